"""
Known tool fingerprints shared by the metadata analyzer and the novelty
tracker. Regexes are matched case-insensitively.
"""

import re

# Plain substrings looked for in a lower-cased file name
AI_FILENAME_TOOLS = (
    "dalle", "midjourney", "stable-diffusion", "stablediffusion", "sd_", "generated", "ai_",
)

AI_GENERATOR_PATTERNS = [re.compile(p, re.IGNORECASE) for p in (
    r"dall-?e", r"midjourney", r"stable.?diffusion", r"sd[_-]?xl",
    r"automatic1111", r"comfyui", r"invoke.?ai", r"leonardo\.ai",
    r"runway", r"pika", r"gen-?2", r"sora", r"firefly", r"imagen",
    r"bing.?image", r"copilot", r"gemini", r"claude",
)]

DEEPFAKE_TOOL_PATTERNS = [re.compile(p, re.IGNORECASE) for p in (
    r"faceswap", r"deepfacelab", r"\bdfl\b", r"reface", r"faceapp",
    r"deepfake", r"first.?order.?motion", r"wav2lip", r"syncnet",
)]

EDITOR_PATTERNS = [re.compile(p, re.IGNORECASE) for p in (
    r"photoshop", r"lightroom", r"gimp", r"affinity", r"capture.?one",
    r"darktable", r"rawtherapee", r"pixelmator", r"snapseed",
    r"vsco", r"canva", r"figma", r"sketch",
)]

SUSPICIOUS_FILENAME_PATTERNS = [re.compile(p, re.IGNORECASE) for p in (
    r"generated", r"ai[_-]?gen", r"_output", r"fake", r"synthetic",
    r"\d{13,}",             # long numeric ids
    r"[a-f0-9]{32,}",       # hash-like names
    r"comfyui", r"automatic1111", r"a1111",
)]

# Output sizes typical of diffusion models and upscalers
AI_DIMENSIONS = {
    (512, 512), (768, 768), (1024, 1024), (2048, 2048),
    (512, 768), (768, 512), (1024, 768), (768, 1024),
    (1920, 1080), (1080, 1920), (1920, 1920),
}

PHOTO_EXTENSIONS = ("jpg", "jpeg", "heic", "raw", "cr2", "nef", "arw")

# Extension → token expected in the declared MIME type
EXTENSION_MIME_TOKENS = {
    "jpg": "jpeg", "jpeg": "jpeg", "png": "png", "webp": "webp", "gif": "gif",
    "bmp": "bmp", "tif": "tiff", "tiff": "tiff", "heic": "heic", "heif": "heif",
}

# Extension → container family detected from magic bytes
EXTENSION_CONTAINERS = {
    "jpg": "jpeg", "jpeg": "jpeg", "png": "png", "webp": "webp", "gif": "gif",
}
