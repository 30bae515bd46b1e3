"""Merge template defaults with ordered override layers."""

from typing import Any, Dict, Iterable, Mapping, Optional

from remoteconfig.contracts.template import TemplateSchema


def merge(
    schema: TemplateSchema,
    override_layers: Optional[Iterable[Optional[Mapping[str, Any]]]] = None,
) -> Dict[str, Any]:
    """Return schema defaults overlaid by each layer in order.

    Later layers win per key; keys a layer does not mention keep their
    previous value. Inputs are never mutated. Empty or ``None`` layers are
    skipped.
    """
    merged = schema.default_values()
    for layer in override_layers or ():
        if layer:
            merged.update(layer)
    return merged
