"""Vision package: pure image ops and cascading template matching.

Submodules:
- preprocess: decoding, cropping, channel split, edge magnitude, template preparation
- matcher: cascading four-channel correlation, best match, dedupe
- templates: reference image loading
"""
from .preprocess import (
    ChannelSet,
    PreparedTemplate,
    decode_image,
    edge_magnitude,
    prepare_template,
)
from .matcher import (
    TemplateMatch,
    deduplicate_matches,
    find_best_match,
    find_matches,
)
from .templates import load_templates

__all__ = [
    "ChannelSet",
    "PreparedTemplate",
    "decode_image",
    "edge_magnitude",
    "prepare_template",
    "TemplateMatch",
    "deduplicate_matches",
    "find_best_match",
    "find_matches",
    "load_templates",
]
