"""
Class label catalog for the detection model.
"""

import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Iterable, Iterator, List, Union

from .errors import ResourceError
from .utils import get_coco_class_names

logger = logging.getLogger(__name__)


class LabelCatalog(Sequence):
    """
    Ordered, read-only list of class names.

    The position of a label is the class index the model reports for it.
    """

    def __init__(self, labels: Iterable[str]):
        self._labels: tuple = tuple(labels)
        if not self._labels:
            raise ResourceError("Label catalog is empty")

    @classmethod
    def load(cls, path: Union[str, Path]) -> "LabelCatalog":
        """
        Load labels from a UTF-8 text file, one label per line.

        Args:
            path: Path to the label file.

        Returns:
            LabelCatalog in file order.

        Raises:
            ResourceError: If the file cannot be read or holds no labels.
        """
        path = Path(path)
        try:
            text = path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Failed to read labels from {path}: {e}")
            raise ResourceError(f"Cannot read label file {path}: {e}") from e

        lines: List[str] = [line.strip() for line in text.splitlines()]

        # Drop trailing blank lines only; interior positions are class indices
        while lines and not lines[-1]:
            lines.pop()

        if not lines:
            raise ResourceError(f"Label file {path} contains no labels")

        logger.info(f"Loaded {len(lines)} labels from {path}")
        return cls(lines)

    @classmethod
    def coco(cls) -> "LabelCatalog":
        """Catalog of the 80 COCO classes used by stock YOLOv8 models."""
        return cls(get_coco_class_names())

    def name(self, class_id: int) -> str:
        """Label for ``class_id``; raises IndexError when out of range."""
        if class_id < 0:
            raise IndexError(f"Negative class index: {class_id}")
        return self._labels[class_id]

    def __getitem__(self, index):
        return self._labels[index]

    def __len__(self) -> int:
        return len(self._labels)

    def __iter__(self) -> Iterator[str]:
        return iter(self._labels)

    def __repr__(self) -> str:
        return f"LabelCatalog({len(self._labels)} labels)"
