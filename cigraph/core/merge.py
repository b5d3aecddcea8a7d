from typing import Any, Dict, Mapping, Optional


def merge_with_override(*layers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Merge mappings left to right; keys from later layers win.

    ``None`` layers are skipped. Key order follows first appearance so that the
    result is stable across runs.
    """
    merged: Dict[str, Any] = {}
    for layer in layers:
        if not layer:
            continue
        for key, value in layer.items():
            merged[key] = value
    return merged
