from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class ReportModel(BaseModel):
    """Immutable report record; serialized with camelCase field names."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )


class AnalyzerResult(ReportModel):
    score: float        # 0-100, higher = more suspicious unless stated otherwise
    findings: list[str] = []
