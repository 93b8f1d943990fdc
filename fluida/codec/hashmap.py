"""
HashmapE codec (fixed-width unsigned keys).

Layout:
    HashmapE n X = hme_empty$0 | hme_root$1 ^(Hashmap n X)
    Hashmap n X  = label:(HmLabel ~l n) node:(HashmapNode (n - l) X)
    node         = leaf value X            (when n - l == 0)
                 | fork ^left ^right       (children have n - l - 1 key bits)

Labels come in three forms; the writer picks the shortest, the reader
accepts all of them:
    hml_short$0  unary length, then the bits
    hml_long$10  length in ceil(log2(n+1)) bits, then the bits
    hml_same$11  repeated bit, then the length
"""

from typing import Callable, Dict, List, Tuple

from .cell import Builder, Cell, CellError, Slice


def _len_bits(n: int) -> int:
    """Width of a label length field for at most n bits (#<= n)."""
    return n.bit_length()


def _store_label(b: Builder, label: int, l: int, n: int) -> None:
    k = _len_bits(n)
    short_cost = 2 * l + 2
    long_cost = 2 + k + l
    same_cost = 3 + k

    is_same = l > 0 and (label == 0 or label == (1 << l) - 1)
    if is_same and same_cost < min(short_cost, long_cost):
        b.store_uint(0b11, 2)
        b.store_bit(label & 1)
        b.store_uint(l, k)
    elif short_cost <= long_cost:
        b.store_bit(0)
        for _ in range(l):
            b.store_bit(1)
        b.store_bit(0)
        if l:
            b.store_uint(label, l)
    else:
        b.store_uint(0b10, 2)
        b.store_uint(l, k)
        if l:
            b.store_uint(label, l)


def _load_label(s: Slice, n: int) -> Tuple[int, int]:
    """Returns (label, length)."""
    k = _len_bits(n)
    if not s.load_bit():
        l = 0
        while s.load_bit():
            l += 1
        if l > n:
            raise CellError(f"Label length {l} exceeds key width {n}")
        return (s.load_uint(l) if l else 0), l
    if not s.load_bit():
        l = s.load_uint(k)
        if l > n:
            raise CellError(f"Label length {l} exceeds key width {n}")
        return (s.load_uint(l) if l else 0), l
    bit = s.load_uint(1)
    l = s.load_uint(k)
    if l > n:
        raise CellError(f"Label length {l} exceeds key width {n}")
    return ((1 << l) - 1 if bit else 0), l


def _common_prefix_len(keys: List[int], n: int) -> int:
    first = keys[0]
    diff = 0
    for key in keys[1:]:
        diff |= first ^ key
    # Highest differing bit position (from the top) bounds the prefix
    return n - diff.bit_length()


def _build(entries: List[Tuple[int, Cell]], n: int) -> Cell:
    b = Builder()
    keys = [k for k, _ in entries]

    if len(entries) == 1:
        key, value = entries[0]
        _store_label(b, key, n, n)
        b.store_slice(value.begin_parse())
        return b.end_cell()

    l = _common_prefix_len(keys, n)
    prefix = keys[0] >> (n - l) if l else 0
    _store_label(b, prefix, l, n)

    m = n - l - 1
    mask = (1 << m) - 1
    left = [(k & mask, v) for k, v in entries if not (k >> m) & 1]
    right = [(k & mask, v) for k, v in entries if (k >> m) & 1]
    b.store_ref(_build(left, m))
    b.store_ref(_build(right, m))
    return b.end_cell()


def build_dict(entries: Dict[int, Cell], key_bits: int) -> Cell:
    """Serialize a non-empty {key: value_cell} mapping to a Hashmap root.

    Value cells are stored inline in their leaf (bits and refs appended
    after the label), so they must fit beside a full-width label.
    """
    if not entries:
        raise ValueError("Cannot build an empty Hashmap; use store_dict")
    for key in entries:
        if key < 0 or key >= (1 << key_bits):
            raise CellError(f"Key {key} does not fit in {key_bits} bits")
    return _build(sorted(entries.items()), key_bits)


def store_dict(b: Builder, entries: Dict[int, Cell], key_bits: int) -> Builder:
    """Store HashmapE: a single 0 bit when empty, else 1 + ^root."""
    if not entries:
        return b.store_bit(0)
    return b.store_maybe_ref(build_dict(entries, key_bits))


def _walk(s: Slice, n: int, prefix: int, out: Dict[int, Slice]) -> None:
    label, l = _load_label(s, n)
    prefix = (prefix << l) | label
    if l == n:
        out[prefix] = s
        return
    left = s.load_ref()
    right = s.load_ref()
    _walk(left.begin_parse(), n - l - 1, prefix << 1, out)
    _walk(right.begin_parse(), n - l - 1, (prefix << 1) | 1, out)


def parse_dict(root: Cell, key_bits: int) -> Dict[int, Slice]:
    """Parse a Hashmap root into {key: value_slice} in ascending key order."""
    out: Dict[int, Slice] = {}
    _walk(root.begin_parse(), key_bits, 0, out)
    return out


def load_dict(s: Slice, key_bits: int, value_parser: Callable[[Slice], object] = None) -> Dict[int, object]:
    """Load HashmapE from a slice, optionally parsing each value."""
    root = s.load_maybe_ref()
    if root is None:
        return {}
    raw = parse_dict(root, key_bits)
    if value_parser is None:
        return dict(raw)
    return {key: value_parser(value) for key, value in raw.items()}
