"""Model pricing and model-list normalization.

Two pricing families exist in the wild:

- Family A (``/api/pricing``): a ``data`` list of per-model objects, where
  ``model_price`` is either a number (per-call price) or ``{input, output}``.
- Family B (``oneHub``/``doneHub``): ``/api/available_model`` returns a map of
  model name to ``{groups, price: {type, input, output}}`` and
  ``/api/user_group_map`` returns the group ratios.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from ..schemas.domain import BillingKind, ModelPricingEntry, PricingCatalog
from ..upstream.errors import UpstreamShapeError
from .quota import is_number

FAMILY_B_SITE_TYPES = frozenset({"oneHub", "doneHub"})


def _num(value: Any, default: float = 0.0) -> float:
    return float(value) if is_number(value) else default


def _str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]


def _unwrap(payload: Any) -> Any:
    # some forks wrap everything in {"success": true, "data": ...}
    if isinstance(payload, Mapping) and "data" in payload and isinstance(payload["data"], (Mapping, list)):
        return payload["data"]
    return payload


def normalize_pricing_family_a(payload: Any) -> PricingCatalog:
    if not isinstance(payload, Mapping) or not isinstance(payload.get("data"), list):
        raise UpstreamShapeError("Pricing payload has no 'data' list", details=payload)

    entries: List[ModelPricingEntry] = []
    for model in payload["data"]:
        if not isinstance(model, Mapping):
            continue
        input_price = 0.0
        output_price = 0.0
        per_call = False
        price = model.get("model_price")
        if is_number(price):
            input_price = output_price = float(price)
            per_call = True
        elif isinstance(price, Mapping):
            input_price = _num(price.get("input"))
            output_price = _num(price.get("output"))

        model_ratio = _num(model.get("model_ratio"))
        source_completion = _num(model.get("completion_ratio"))
        if input_price == 0 and output_price == 0 and model_ratio:
            input_price = model_ratio
            output_price = model_ratio * (source_completion or 1)

        if model.get("quota_type") == 1:
            per_call = True

        completion_ratio = source_completion or (output_price / input_price if input_price > 0 else 1.0)
        endpoints = model.get("supported_endpoint_types") or model.get("endpoint_types")
        entries.append(
            ModelPricingEntry(
                model_name=str(model.get("model_name") or ""),
                model_description=model.get("model_description"),
                billing_kind=BillingKind.per_call if per_call else BillingKind.token,
                input_price=input_price,
                output_price=output_price,
                model_ratio=model_ratio or 1.0,
                completion_ratio=completion_ratio,
                enable_groups=_str_list(model.get("enable_groups")),
                endpoint_types=_str_list(endpoints),
                owner_by=model.get("owner_by"),
            )
        )

    group_ratio: Dict[str, float] = {}
    raw_ratio = payload.get("group_ratio")
    if isinstance(raw_ratio, Mapping):
        group_ratio = {str(k): float(v) for k, v in raw_ratio.items() if is_number(v)}
    usable_group: Dict[str, str] = {}
    raw_usable = payload.get("usable_group")
    if isinstance(raw_usable, Mapping):
        usable_group = {str(k): str(v) for k, v in raw_usable.items()}
    return PricingCatalog(entries=entries, group_ratio=group_ratio, usable_group=usable_group)


def normalize_pricing_family_b(available_models: Any, user_group_map: Optional[Any] = None) -> PricingCatalog:
    models = _unwrap(available_models)
    if not isinstance(models, Mapping):
        raise UpstreamShapeError("available_model payload is not an object", details=available_models)

    entries: List[ModelPricingEntry] = []
    for name, model in models.items():
        if not isinstance(model, Mapping):
            continue
        groups = _str_list(model.get("groups")) or ["default"]
        price = model.get("price") if isinstance(model.get("price"), Mapping) else {}
        input_price = _num(price.get("input"))
        output_price = _num(price.get("output"))
        price_type = price.get("type")
        per_call = price_type is not None and price_type != "tokens"
        entries.append(
            ModelPricingEntry(
                model_name=str(name),
                model_description=model.get("description") or None,
                billing_kind=BillingKind.per_call if per_call else BillingKind.token,
                input_price=input_price,
                output_price=output_price,
                model_ratio=1.0,
                completion_ratio=output_price / input_price if input_price > 0 else 1.0,
                enable_groups=groups,
                endpoint_types=[],
                owner_by=model.get("owned_by") or "",
            )
        )

    group_ratio: Dict[str, float] = {}
    usable_group: Dict[str, str] = {}
    groups_map = _unwrap(user_group_map) if user_group_map is not None else {}
    if isinstance(groups_map, Mapping):
        for key, group in groups_map.items():
            if not isinstance(group, Mapping):
                continue
            if "ratio" in group:
                group_ratio[str(key)] = _num(group.get("ratio")) or 1.0
            if "name" in group:
                usable_group[str(key)] = str(group.get("name") or key)
    return PricingCatalog(entries=entries, group_ratio=group_ratio, usable_group=usable_group)


def extract_model_names(payload: Any) -> List[str]:
    """Flatten a model list (strings or objects) into unique names, order kept."""
    items = _unwrap(payload)
    if not isinstance(items, list):
        raise UpstreamShapeError("Model list payload is not a list", details=payload)
    names: List[str] = []
    seen = set()
    for item in items:
        if isinstance(item, str):
            name: Optional[str] = item
        elif isinstance(item, Mapping):
            name = item.get("model_name") or item.get("name") or item.get("id")
        else:
            name = None
        if not name:
            continue
        name = str(name).strip()
        if name and name not in seen:
            seen.add(name)
            names.append(name)
    return names
