"""Read Test and Resource manifests written in YAML.

A manifest holds one or more documents separated by `---`, each with
`kind: Test` or `kind: Resource`.
"""

from __future__ import annotations

from pathlib import Path

import yaml

from .models import Crd, crd_from_dict


def convert_manifest(text: str) -> list[Crd]:
    """Parse manifest text into objects.

    Raises:
        ValueError: If a document is not a valid Test or Resource
    """
    crds: list[Crd] = []
    for index, document in enumerate(yaml.safe_load_all(text)):
        if document is None:
            continue
        if not isinstance(document, dict):
            raise ValueError(f"Manifest document {index} is not a mapping")
        try:
            crds.append(crd_from_dict(document))
        except ValueError as e:
            raise ValueError(f"Manifest document {index} is invalid: {e}") from e
    return crds


def read_manifest(path: Path | str) -> list[Crd]:
    """Read objects from a manifest file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the manifest is invalid
    """
    path = Path(path)
    with open(path) as f:
        return convert_manifest(f.read())


__all__ = ["convert_manifest", "read_manifest"]
