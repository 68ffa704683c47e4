"""
Curated catalog of known generation, deepfake and editing tools.

The seed list is the slow-changing complement to the pattern catalog: a
match short-circuits the rarity model, and a high or critical risk entry
marks the pattern suspicious no matter how common it is.
"""

import re
from functools import lru_cache
from typing import Iterable, Optional

from mediaforensics.schemas.patterns import SoftwareSignature


def _sig(pattern: str, name: str, category: str, risk: str) -> SoftwareSignature:
    return SoftwareSignature(
        signature_pattern=pattern, software_name=name, category=category, risk_level=risk
    )


DEFAULT_SOFTWARE_SIGNATURES: list[SoftwareSignature] = [
    # AI generators
    _sig(r"dall-?e", "DALL-E", "ai_generator", "high"),
    _sig(r"midjourney", "Midjourney", "ai_generator", "high"),
    _sig(r"stable.?diffusion|sd[_-]?xl", "Stable Diffusion", "ai_generator", "high"),
    _sig(r"automatic1111|a1111", "AUTOMATIC1111 WebUI", "ai_generator", "high"),
    _sig(r"comfyui", "ComfyUI", "ai_generator", "high"),
    _sig(r"invoke.?ai", "InvokeAI", "ai_generator", "high"),
    _sig(r"leonardo\.ai", "Leonardo.Ai", "ai_generator", "high"),
    _sig(r"firefly", "Adobe Firefly", "ai_generator", "medium"),
    _sig(r"imagen", "Google Imagen", "ai_generator", "high"),
    _sig(r"bing.?image", "Bing Image Creator", "ai_generator", "high"),
    _sig(r"runway|gen-?2", "Runway", "ai_generator", "high"),
    _sig(r"sora", "Sora", "ai_generator", "high"),
    # Deepfake tools
    _sig(r"deepfacelab|\bdfl\b", "DeepFaceLab", "deepfake_tool", "critical"),
    _sig(r"faceswap", "Faceswap", "deepfake_tool", "critical"),
    _sig(r"reface", "Reface", "deepfake_tool", "critical"),
    _sig(r"faceapp", "FaceApp", "deepfake_tool", "high"),
    _sig(r"wav2lip", "Wav2Lip", "deepfake_tool", "critical"),
    _sig(r"first.?order.?motion", "First Order Motion Model", "deepfake_tool", "critical"),
    # Editors
    _sig(r"photoshop", "Adobe Photoshop", "editor", "low"),
    _sig(r"lightroom", "Adobe Lightroom", "editor", "low"),
    _sig(r"gimp", "GIMP", "editor", "low"),
    _sig(r"affinity", "Affinity Photo", "editor", "low"),
    _sig(r"snapseed", "Snapseed", "editor", "low"),
    _sig(r"canva", "Canva", "editor", "low"),
]


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern, re.IGNORECASE)


def match_software(
    software: Optional[str], signatures: Iterable[SoftwareSignature] = DEFAULT_SOFTWARE_SIGNATURES
) -> Optional[SoftwareSignature]:
    """First catalog entry whose pattern occurs in `software`, riskiest first."""
    if not software:
        return None
    order = {"critical": 0, "high": 1, "medium": 2, "low": 3}
    for sig in sorted(signatures, key=lambda s: order[s.risk_level]):
        if _compile(sig.signature_pattern).search(software):
            return sig
    return None
