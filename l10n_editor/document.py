"""
Conversion between nested JSON documents and flat leaf-path mappings.

A leaf path is a dotted string such as ``auth.errors.0.message``. Array
indices render as plain decimal segments; object keys render literally, with a
backslash escaping ``\\``, ``.`` and the first digit of an all-digit key so
that an object key ``"0"`` (rendered ``\\0``) is never read back as an index.
"""
import copy
import enum
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from l10n_editor.errors import StructuralError

logger = logging.getLogger(__name__)

PATH_SEPARATOR = '.'
ESCAPE_CHAR = '\\'


class NodeKind(enum.Enum):
    OBJECT = 'object'
    ARRAY = 'array'
    SCALAR = 'scalar'


def node_kind(value: Any, path: str = '') -> NodeKind:
    """
    Classify a document node.

    JSON null is treated as a scalar leaf. Anything that cannot come out of
    ``json.loads`` raises a StructuralError.
    """
    if isinstance(value, dict):
        return NodeKind.OBJECT
    if isinstance(value, list):
        return NodeKind.ARRAY
    if value is None or isinstance(value, (str, bool, int, float)):
        return NodeKind.SCALAR
    raise StructuralError(
        f"Unsupported value of type '{type(value).__name__}' in document.", path=path
    )


def escape_key(key: str) -> str:
    """Render an object key as a path segment."""
    escaped = key.replace(ESCAPE_CHAR, ESCAPE_CHAR * 2).replace(PATH_SEPARATOR, ESCAPE_CHAR + PATH_SEPARATOR)
    if key.isdigit() and key.isascii():
        escaped = ESCAPE_CHAR + escaped
    return escaped


def join_path(prefix: str, segment: str, is_root: bool) -> str:
    return segment if is_root else f"{prefix}{PATH_SEPARATOR}{segment}"


def split_path(path: str) -> List[Tuple[str, bool]]:
    """
    Split a leaf path into ``(segment, is_index)`` pairs.

    A segment is an array index only when it consists solely of unescaped
    ASCII digits.
    """
    segments: List[Tuple[str, bool]] = []
    current: List[str] = []
    escaped_any = False
    i = 0
    while i < len(path):
        char = path[i]
        if char == ESCAPE_CHAR:
            if i + 1 >= len(path):
                raise StructuralError("Leaf path ends with a dangling escape character.", path=path)
            current.append(path[i + 1])
            escaped_any = True
            i += 2
            continue
        if char == PATH_SEPARATOR:
            segments.append(_finish_segment(current, escaped_any))
            current = []
            escaped_any = False
        else:
            current.append(char)
        i += 1
    segments.append(_finish_segment(current, escaped_any))
    return segments


def _finish_segment(chars: List[str], escaped_any: bool) -> Tuple[str, bool]:
    text = ''.join(chars)
    is_index = not escaped_any and text.isdigit() and text.isascii()
    return text, is_index


def is_array_item_path(path: str) -> bool:
    """True when the final segment of ``path`` addresses an array element."""
    return split_path(path)[-1][1]


def flatten_document(document: Any) -> Dict[str, Any]:
    """
    Flatten a nested document into an ordered mapping of leaf paths to scalars.

    Containers are never emitted themselves, so empty objects and arrays
    contribute nothing. Key order follows a depth-first walk of the document.

    Args:
        document: The parsed JSON document. Its root must be an object or array.

    Returns:
        Dict[str, Any]: Leaf path to scalar value, in traversal order.
    """
    if node_kind(document) is NodeKind.SCALAR:
        raise StructuralError("Document root must be an object or an array.", path='')

    flat: Dict[str, Any] = {}
    # Iterative walk, no recursion depth limit
    stack: List[Tuple[str, Any, bool]] = [('', document, True)]
    while stack:
        path, node, is_root = stack.pop()
        kind = node_kind(node, path)
        if kind is NodeKind.SCALAR:
            flat[path] = node
            continue
        if kind is NodeKind.OBJECT:
            children = []
            for key, value in node.items():
                if not isinstance(key, str):
                    raise StructuralError(
                        f"Object key {key!r} is not a string.", path=path
                    )
                children.append((join_path(path, escape_key(key), is_root), value, False))
        else:
            children = [
                (join_path(path, str(index), is_root), value, False)
                for index, value in enumerate(node)
            ]
        stack.extend(reversed(children))
    return flat


def _new_container(next_is_index: bool):
    return [] if next_is_index else {}


def _fits(node: Any, want_index: bool) -> bool:
    return isinstance(node, list) if want_index else isinstance(node, dict)


def unflatten_document(flat: Dict[str, Any], base: Optional[Any] = None) -> Any:
    """
    Rebuild a nested document from a flat mapping.

    Starts from a deep copy of ``base`` (an empty object when omitted) so that
    keys and empty containers the mapping does not mention survive. Missing
    intermediate containers are created as arrays when the following segment
    is an index, objects otherwise; existing containers of the right kind are
    reused. A scalar or a container of the wrong kind in the way is replaced.
    Each leaf overwrites whatever ``base`` held at that position.

    Args:
        flat: Leaf path to scalar value.
        base: Optional document supplying the shape to write into.

    Returns:
        The reconstructed document.
    """
    result = copy.deepcopy(base) if base is not None else {}
    if node_kind(result) is NodeKind.SCALAR:
        raise StructuralError("Base document root must be an object or an array.", path='')

    for path, value in flat.items():
        if node_kind(value, path) is not NodeKind.SCALAR:
            raise StructuralError("Only scalar values can be written at a leaf path.", path=path)
        segments = split_path(path)
        if not _fits(result, segments[0][1]):
            logger.warning("Replacing the document root to write '%s'.", path)
            result = _new_container(segments[0][1])

        container = result
        for position, (segment, is_index) in enumerate(segments):
            is_leaf = position == len(segments) - 1
            next_is_index = not is_leaf and segments[position + 1][1]

            if isinstance(container, list):
                index = int(segment)
                if index >= len(container):
                    container.extend([None] * (index + 1 - len(container)))
                slot = index
            else:
                slot = segment

            if is_leaf:
                container[slot] = value
                break

            child = container[slot] if isinstance(container, list) else container.get(slot)
            if not _fits(child, next_is_index):
                if node_kind(child, path) is not NodeKind.SCALAR:
                    logger.warning(
                        "Replacing %s at segment '%s' to write '%s'.", node_kind(child).value, segment, path
                    )
                child = _new_container(next_is_index)
                container[slot] = child
            container = child
    return result


def serialize_document(document: Any, indent: int = 4) -> str:
    """Canonical text form used when committing a target document."""
    return json.dumps(document, indent=indent, ensure_ascii=False)
