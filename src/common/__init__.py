from common.ids import generate_id, utc_now
from common.jsonio import load_json, atomic_write_json
from common.text_template import detect_placeholders, resolve

__all__ = [
    "generate_id",
    "utc_now",
    "load_json",
    "atomic_write_json",
    "resolve",
    "detect_placeholders",
]
