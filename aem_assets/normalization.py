"""
Normalization of asset API responses into canonical records.

The listing endpoint answers in one of several JSON shapes depending on the
API flavour and selector used:

- entities: Siren collection (``{"properties": ..., "entities": [...], "links": [...]}``)
- children: ``{"children": [{"id": ..., "name": ...}, ...]}``
- flat:     a repository node whose child nodes are inlined as objects carrying
            ``jcr:primaryType``

Shapes are sniffed in that fixed order (first match wins). Anything else is
returned as an empty listing with the raw payload kept for diagnostics.

Optional fields never raise: missing or malformed values fall back to
documented defaults. Only non-object input raises ShapeError.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple
from urllib.parse import unquote

from .errors import ShapeError
from .models import DAM_ROOT, AssetListing, CanonicalAsset, CanonicalMetadataSchema

logger = logging.getLogger("aem_assets.normalization")

PRIMARY_TYPE = "jcr:primaryType"
MIXIN_TYPES = "jcr:mixinTypes"
RESERVED_PREFIX = "jcr:"
KEPT_DISPLAY_KEYS = frozenset({"jcr:title", "jcr:description"})
KEPT_STRUCTURAL_KEYS = frozenset({PRIMARY_TYPE, MIXIN_TYPES})
DEFAULT_NAMESPACE = "_default"

EXPECTED_SHAPES = "an object with 'entities', an object with 'children', or a node carrying 'jcr:primaryType'"

WELL_KNOWN_METADATA_KEYS = (
    "jcr:primaryType",
    "jcr:uuid",
    "dc:title",
    "dc:description",
    "dc:format",
    "dc:creator",
    "dc:modified",
    "dam:assetState",
    "dam:size",
    "tiff:imageWidth",
    "tiff:imageHeight",
    "xmp:CreatorTool",
)

_SELF_LINK_PATH = re.compile(r"/api/assets(/[^?]+)\.json")


# =============================================================================
# FIELD HELPERS
# =============================================================================

def _require_mapping(payload: Any, operation: str) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise ShapeError(
            f"{operation} expected a JSON object ({EXPECTED_SHAPES}), got {type(payload).__name__}"
        )
    return payload


def _as_mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _as_text(value: Any) -> str:
    # Multi-valued properties (e.g. dc:title as a list) use their first entry.
    if isinstance(value, (list, tuple)):
        value = next((entry for entry in value if entry not in (None, "")), None)
    if value is None:
        return ""
    return str(value)


def _as_int(value: Any, default: Optional[int] = 0) -> Optional[int]:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return default


def _first_present(source: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = source.get(key)
        if value not in (None, "", [], ()):
            return value
    return None


def dam_path(name: str) -> str:
    """Join a node name onto the DAM root."""
    return f"{DAM_ROOT}/{name.lstrip('/')}"


def _link_href(links: List[Any], rel_name: str) -> str:
    for link in links:
        if not isinstance(link, Mapping):
            continue
        rel = link.get("rel") or []
        if isinstance(rel, str):
            rel = [rel]
        if rel_name in rel:
            return _as_text(link.get("href"))
    return ""


def path_from_self_link(href: str) -> str:
    """``https://host/api/assets/a/b.jpg.json`` -> ``/content/dam/a/b.jpg`` (empty when no match)."""
    if not href:
        return ""
    match = _SELF_LINK_PATH.search(href)
    if not match:
        return ""
    return DAM_ROOT + unquote(match.group(1))


# =============================================================================
# ENTITY (SIREN) SHAPE
# =============================================================================

def normalize_entity(entity: Mapping[str, Any]) -> CanonicalAsset:
    """
    Normalize one Siren entity from the Assets HTTP API.

    Field sources:
        id:          properties.fmUuid, else properties.name
        path:        DAM root + URL-decoded path of the "self" link, else ""
        title:       metadata dc:title, else name
        description: metadata dc:description
        mime_type:   metadata dc:format, else ""
        size_bytes:  metadata dam:size, else properties.size, else 0
        thumbnail:   "thumbnail" link
        delivery:    "content" link
    """
    entity = _require_mapping(entity, "normalize_entity")
    props = _as_mapping(entity.get("properties"))
    metadata = _as_mapping(props.get("metadata"))
    links = entity.get("links") if isinstance(entity.get("links"), list) else []

    name = _as_text(props.get("name"))
    content_link = _link_href(links, "content") or None
    size = _as_int(_first_present(metadata, "dam:size"), default=None)
    if size is None:
        size = _as_int(props.get("size"), default=0)

    return CanonicalAsset(
        id=_as_text(props.get("fmUuid")) or name,
        name=name,
        path=path_from_self_link(_link_href(links, "self")),
        title=_as_text(metadata.get("dc:title")) or name,
        description=_as_text(metadata.get("dc:description")) or None,
        mime_type=_as_text(metadata.get("dc:format")),
        size_bytes=size or 0,
        width=_as_int(_first_present(metadata, "tiff:ImageWidth", "tiff:imageWidth"), default=None),
        height=_as_int(_first_present(metadata, "tiff:ImageLength", "tiff:imageHeight"), default=None),
        created=_as_text(props.get("jcr:created")) or None,
        modified=_as_text(props.get("jcr:lastModified")) or None,
        thumbnail_ref=_link_href(links, "thumbnail") or None,
        delivery_url=content_link,
        content_url=content_link,
        metadata=dict(props),
        raw_source=entity,
    )


def _is_entity_collection(payload: Mapping[str, Any]) -> bool:
    return isinstance(payload.get("entities"), list)


def _from_entities(payload: Mapping[str, Any]) -> AssetListing:
    entities = payload["entities"]
    assets = [normalize_entity(entity) for entity in entities if isinstance(entity, Mapping)]
    properties = dict(_as_mapping(payload.get("properties")))
    paging = _as_mapping(properties.get("srn:paging"))
    total = _as_int(paging.get("total"), default=None)
    return AssetListing(
        assets=assets,
        total=total or len(entities),
        properties=properties,
        raw=payload,
    )


# =============================================================================
# CHILDREN SHAPE
# =============================================================================

def _is_children(payload: Mapping[str, Any]) -> bool:
    return isinstance(payload.get("children"), list)


def _normalize_child(child: Mapping[str, Any]) -> CanonicalAsset:
    name = _as_text(child.get("name"))
    return CanonicalAsset(
        id=_as_text(child.get("id")) or name,
        name=name,
        path=_as_text(child.get("path")) or dam_path(name),
        title=_as_text(child.get("title")) or name,
        mime_type=_as_text(child.get("mimeType")),
        size_bytes=_as_int(child.get("size"), default=0) or 0,
        width=_as_int(child.get("width"), default=None),
        height=_as_int(child.get("height"), default=None),
        description=_as_text(child.get("description")) or None,
        metadata=dict(child),
        raw_source=child,
    )


def _from_children(payload: Mapping[str, Any]) -> AssetListing:
    children = [child for child in payload["children"] if isinstance(child, Mapping)]
    assets = [_normalize_child(child) for child in children]
    return AssetListing(
        assets=assets,
        total=len(payload["children"]),
        properties=dict(_as_mapping(payload.get("properties"))),
        raw=payload,
    )


# =============================================================================
# FLAT-PROPERTIES SHAPE
# =============================================================================

def _is_flat_node(payload: Mapping[str, Any]) -> bool:
    return PRIMARY_TYPE in payload


def _from_flat(payload: Mapping[str, Any]) -> AssetListing:
    assets: List[CanonicalAsset] = []
    for key, node in payload.items():
        if not isinstance(node, Mapping) or PRIMARY_TYPE not in node:
            continue
        content = _as_mapping(node.get("jcr:content"))
        metadata = _as_mapping(content.get("metadata"))
        assets.append(
            CanonicalAsset(
                id=_as_text(node.get("jcr:uuid")) or key,
                name=key,
                path=dam_path(key),
                title=_as_text(node.get("jcr:title")) or _as_text(metadata.get("dc:title")) or key,
                mime_type=_as_text(node.get("jcr:mimeType")) or _as_text(metadata.get("dc:format")),
                size_bytes=_as_int(metadata.get("dam:size"), default=0) or 0,
                metadata=dict(node),
                raw_source=node,
            )
        )
    return AssetListing(
        assets=assets,
        total=len(assets),
        properties={PRIMARY_TYPE: payload[PRIMARY_TYPE]},
        raw=payload,
    )


# =============================================================================
# SHAPE DISPATCH
# =============================================================================

ShapeHandler = Tuple[str, Callable[[Mapping[str, Any]], bool], Callable[[Mapping[str, Any]], AssetListing]]

# Order matters: payloads can match more than one predicate.
LISTING_SHAPES: Tuple[ShapeHandler, ...] = (
    ("entities", _is_entity_collection, _from_entities),
    ("children", _is_children, _from_children),
    ("flat", _is_flat_node, _from_flat),
)


def sniff_shape(payload: Any) -> str:
    """Name of the first listing shape that matches, or "unknown"."""
    payload = _require_mapping(payload, "sniff_shape")
    for name, matches, _ in LISTING_SHAPES:
        if matches(payload):
            return name
    return "unknown"


def normalize_asset_list(payload: Any) -> AssetListing:
    """
    Normalize a listing response of any known shape.

    Returns:
        AssetListing: assets (as a sequence), total, properties and raw payload

    Raises:
        ShapeError: payload is not a JSON object
    """
    payload = _require_mapping(payload, "normalize_asset_list")
    for name, matches, handler in LISTING_SHAPES:
        if matches(payload):
            listing = handler(payload)
            listing.shape = name
            logger.debug(f"Normalized {len(listing)} asset(s) from {name} shape (total: {listing.total})")
            return listing

    logger.warning(f"Unrecognized listing shape (keys: {sorted(payload)[:10]})")
    return AssetListing(assets=[], total=0, properties={}, raw=payload, shape="unknown")


# =============================================================================
# METADATA
# =============================================================================

def namespace_of(key: str) -> str:
    """Prefix before the first ':'; keys without one (or starting with it) use ``_default``."""
    index = key.find(":")
    if index > 0:
        return key[:index]
    return DEFAULT_NAMESPACE


def _keep_metadata_key(key: str) -> bool:
    if not key.startswith(RESERVED_PREFIX):
        return True
    return key in KEPT_DISPLAY_KEYS or key in KEPT_STRUCTURAL_KEYS


def normalize_metadata_schema(payload: Any) -> CanonicalMetadataSchema:
    """
    Flatten a ``jcr:content/metadata`` node and group its keys by namespace.

    ``jcr:`` system keys are dropped except jcr:title, jcr:description,
    jcr:primaryType and jcr:mixinTypes. Every surviving key lands in
    ``all_properties`` and in exactly one ``by_namespace`` bucket.

    Raises:
        ShapeError: payload is not a JSON object
    """
    payload = _require_mapping(payload, "normalize_metadata_schema")
    all_properties: Dict[str, Any] = {}
    by_namespace: Dict[str, Dict[str, Any]] = {}

    for key, value in payload.items():
        key = str(key)
        if not _keep_metadata_key(key):
            continue
        all_properties[key] = value
        by_namespace.setdefault(namespace_of(key), {})[key] = value

    return CanonicalMetadataSchema(all_properties=all_properties, by_namespace=by_namespace, raw=payload)


def normalize_metadata_response(payload: Any) -> Dict[str, Any]:
    """
    Flat metadata mapping for a single asset.

    Reads ``payload["properties"]`` when present (Siren), else the payload
    itself. Well-known keys come first, followed by every other property.
    """
    payload = _require_mapping(payload, "normalize_metadata_response")
    properties = payload.get("properties")
    if not isinstance(properties, Mapping):
        properties = payload

    result: Dict[str, Any] = {key: properties[key] for key in WELL_KNOWN_METADATA_KEYS if key in properties}
    result.update(properties)
    return result
