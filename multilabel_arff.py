from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np
from scipy.io.arff import loadarff

from stream_header import ConfigurationError, StreamHeader

_RELATION = re.compile(r"^\s*@relation\s+(.*)$", re.IGNORECASE)
_ATTRIBUTE = re.compile(r"^\s*@attribute\s+('[^']*'|\"[^\"]*\"|\S+)\s+(.+?)\s*$", re.IGNORECASE)
_LABEL_FLAG = re.compile(r"-C\s+(-?\d+)")


def _attribute_kind(declaration: str) -> str:
    declaration = declaration.strip()
    if declaration.startswith("{"):
        return "nominal"
    kind = declaration.split()[0].lower()
    return "numeric" if kind in ("numeric", "real", "integer") else kind


def _read_arff_header(filepath: str) -> Tuple[str, List[Tuple[str, str]], bool]:
    """
    Scans the ARFF header.

    Returns the relation name, the declared (name, kind) attributes and whether
    the first data row is written in sparse `{index value, ...}` form.
    """
    relation = ""
    attributes = []
    with open(filepath, "r", encoding="utf-8") as f:
        for line in f:
            stripped = line.strip()
            if not stripped or stripped.startswith("%"):
                continue
            if stripped.lower().startswith("@data"):
                for row in f:
                    row = row.strip()
                    if row and not row.startswith("%"):
                        return relation, attributes, row.startswith("{")
                break
            m = _RELATION.match(stripped)
            if m:
                relation = m.group(1).strip().strip("'\"")
                continue
            m = _ATTRIBUTE.match(stripped)
            if m:
                attributes.append((m.group(1).strip("'\""), _attribute_kind(m.group(2))))
    return relation, attributes, False


def _label_count_from_relation(relation: str) -> Optional[int]:
    m = _LABEL_FLAG.search(relation)
    return int(m.group(1)) if m else None


def _to_label(value) -> bool:
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    if isinstance(value, str):
        value = value.strip().strip("'\"")
        if value in ("1", "true", "True"):
            return True
        if value in ("0", "false", "False"):
            return False
        raise ValueError(f"Label value '{value}' is not binary.")
    return bool(int(value))


def _sparse_rows(filepath: str, names: List[str], feature_names: List[str], label_names: List[str]):
    # Attributes left out of a sparse row are 0: features stay absent, labels are False.
    features = set(feature_names)
    with open(filepath, "r", encoding="utf-8") as f:
        for line in f:
            if line.strip().lower().startswith("@data"):
                break
        for line in f:
            line = line.strip()
            if not line or line.startswith("%"):
                continue
            body = line.strip("{}").strip()
            x: Dict[str, Any] = {}
            y = dict.fromkeys(label_names, False)
            for entry in body.split(",") if body else ():
                index, value = entry.split(None, 1)
                name = names[int(index)]
                value = value.strip()
                if name in features:
                    if value != "?":
                        x[name] = float(value)
                else:
                    y[name] = _to_label(value)
            yield x, y


def read_multilabel_arff(
    filepath: str,
    n_labels: Optional[int] = None,
) -> Tuple[StreamHeader, Iterator[Tuple[Dict[str, Any], Dict[str, bool]]]]:
    """
    Reads a MEKA-style multi-label ARFF file, in dense or sparse form.

    Dense files are loaded with scipy. Sparse files (`{index value, ...}` rows)
    are streamed row by row; attributes missing from a row are left out of x
    and missing labels are False.

    Args:
        filepath: Path to the ARFF file.
        n_labels: Number of label attributes. A positive value means the first
          `n_labels` attributes are labels, a negative value the last ones. When
          omitted, the `-C <n>` option of the relation name is used.

    Returns:
        The stream header and an iterator of (x, y) pairs where
          x: dict of feature_name -> float (missing values are left out)
          y: dict of label_name -> bool

    Raises:
        FileNotFoundError: If the filepath does not exist.
        ConfigurationError: If the label count cannot be determined or an input
          attribute is not numeric.
    """
    data = None
    try:
        relation, attributes, sparse = _read_arff_header(filepath)
        if not sparse:
            with open(filepath, "r", encoding="utf-8") as f:
                data, meta = loadarff(f)
            attributes = list(zip(meta.names(), meta.types()))
    except FileNotFoundError:
        logging.error(f"File not found at '{filepath}'")
        raise
    except Exception as e:
        logging.error(f"Error loading ARFF file '{filepath}': {e}")
        raise

    if n_labels is None:
        n_labels = _label_count_from_relation(relation)
    if not n_labels:
        raise ConfigurationError(
            f"Cannot determine the number of labels of '{filepath}'. "
            f"Pass n_labels or add '-C <n>' to the relation name."
        )

    names = [name for name, _ in attributes]
    if abs(n_labels) >= len(names):
        raise ConfigurationError(f"{abs(n_labels)} labels leave no input attributes among {len(names)}.")
    if n_labels > 0:
        label_names, feature_names = names[:n_labels], names[n_labels:]
    else:
        label_names, feature_names = names[n_labels:], names[:n_labels]

    for name, kind in attributes:
        if name in feature_names and kind != "numeric":
            raise ConfigurationError(f"Input attribute '{name}' is {kind}; only numeric inputs are supported.")

    header = StreamHeader(feature_names=feature_names, label_names=label_names,
                          relation=relation.split(":")[0] or "stream")
    rows_info = "sparse rows" if sparse else f"{len(data)} rows"
    logging.info(f"ARFF Reader: relation='{header.relation}', {header.n_labels} labels, "
                 f"{header.n_features} features, {rows_info}.")

    if sparse:
        return header, _sparse_rows(filepath, names, feature_names, label_names)

    def rows():
        for row in data:
            x: Dict[str, Any] = {}
            for name in feature_names:
                v = row[name]
                if isinstance(v, np.floating) and np.isnan(v):
                    continue
                x[name] = float(v)
            y = {name: _to_label(row[name]) for name in label_names}
            yield x, y

    return header, rows()


def save_multilabel_stream_to_arff(
    stream: Iterable[Tuple[dict, dict]],
    header: StreamHeader,
    relation_name: Optional[str] = None,
    output_file: str = "multilabel_stream.arff",
) -> int:
    """Writes (x, y) pairs as a MEKA-style ARFF file, labels first. Returns the row count."""
    relation_name = relation_name or header.relation
    count = 0
    with open(output_file, "w", encoding="utf-8") as f:
        f.write(f"@relation '{relation_name}: -C {header.n_labels}'\n\n")
        for label in header.label_names:
            f.write(f"@attribute {label} {{0,1}}\n")
        for feat in header.feature_names:
            f.write(f"@attribute {feat} numeric\n")
        f.write("\n@data\n")

        for x, y in stream:
            values = [str(int(bool(y[label]))) for label in header.label_names]
            values += ["?" if x.get(feat) is None else repr(float(x[feat])) for feat in header.feature_names]
            f.write(",".join(values) + "\n")
            count += 1

    logging.info(f"Stream saved to {output_file} in ARFF format ({count} rows).")
    return count
