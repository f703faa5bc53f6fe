"""
Reference Frame Graph.

Static transforms between sensor frames, as provided by a georeferencing
document or the static transform topic of a recording.

Each FrameTransform maps coordinates given in the child frame into the parent
frame: p_parent = R(rotation) · p_child + translation.

Exports:
    FrameTransform: One parent/child edge
    ReferenceFrames: Frame graph with merge and resolve
"""

import json
from pathlib import Path
from typing import Dict, Iterable, List, Tuple, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator

from exceptions import ConfigurationError, ReferenceFrameConflictError, ReferenceFrameError


class FrameTransform(BaseModel):
    """Rigid transform of child_frame_id relative to parent_frame_id."""

    model_config = ConfigDict(frozen=True)

    parent_frame_id: str = Field(..., min_length=1)
    child_frame_id: str = Field(..., min_length=1)
    translation: Tuple[float, float, float] = Field(default=(0.0, 0.0, 0.0))
    rotation: Tuple[float, float, float, float] = Field(
        default=(0.0, 0.0, 0.0, 1.0),
        description="Unit quaternion (x, y, z, w)"
    )

    @field_validator('rotation')
    @classmethod
    def validate_rotation(cls, v):
        norm = float(np.linalg.norm(v))
        if norm == 0.0:
            raise ValueError("rotation quaternion must not be zero")
        return tuple(float(c) / norm for c in v)

    def matrix(self) -> np.ndarray:
        """4x4 homogeneous matrix mapping child coordinates to parent coordinates."""
        x, y, z, w = self.rotation
        rotation = np.array([
            [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
            [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
            [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
        ])
        matrix = np.eye(4)
        matrix[:3, :3] = rotation
        matrix[:3, 3] = self.translation
        return matrix


class ReferenceFrames(BaseModel):
    """
    Frame graph keyed by child frame.

    A child frame has exactly one parent. Merging graphs is a union; the same
    child frame may appear in both only with an identical definition.
    """

    model_config = ConfigDict(frozen=True)

    transforms: Dict[str, FrameTransform] = Field(default_factory=dict)

    @classmethod
    def from_transforms(cls, transforms: Iterable[FrameTransform]) -> "ReferenceFrames":
        return cls().merge([cls(transforms={t.child_frame_id: t}) for t in transforms])

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "ReferenceFrames":
        """
        Load a georeferencing document.

        Expected layout:
            {"transforms": [{"parent_frame_id": "world", "child_frame_id": "base_link",
                             "translation": [x, y, z], "rotation": [x, y, z, w]}, ...]}

        Raises:
            ConfigurationError: File missing or malformed
        """
        path = Path(path)
        try:
            document = json.loads(path.read_text())
            transforms = [FrameTransform.model_validate(t) for t in document["transforms"]]
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise ConfigurationError(f"Invalid georeferencing document {path}: {e}") from e
        return cls.from_transforms(transforms)

    @property
    def frame_ids(self) -> List[str]:
        ids = set(self.transforms)
        ids.update(t.parent_frame_id for t in self.transforms.values())
        return sorted(ids)

    def merge(self, others: Iterable["ReferenceFrames"]) -> "ReferenceFrames":
        """
        Union of this graph and others.

        Raises:
            ReferenceFrameConflictError: A child frame is defined differently
        """
        merged = dict(self.transforms)
        for other in others:
            for child_frame_id, transform in other.transforms.items():
                existing = merged.get(child_frame_id)
                if existing is not None and existing != transform:
                    raise ReferenceFrameConflictError(
                        child_frame_id,
                        f"Frame '{child_frame_id}' defined twice: parent "
                        f"'{existing.parent_frame_id}' vs '{transform.parent_frame_id}', "
                        f"translation {existing.translation} vs {transform.translation}, "
                        f"rotation {existing.rotation} vs {transform.rotation}"
                    )
                merged[child_frame_id] = transform
        return ReferenceFrames(transforms=merged)

    def transform_matrix(self, source_frame_id: str, target_frame_id: str) -> np.ndarray:
        """
        Compose the chain source -> parent -> ... -> target.

        Raises:
            ReferenceFrameError: Target not an ancestor of source, or cycle
        """
        matrix = np.eye(4)
        frame_id = source_frame_id
        visited = {frame_id}
        while frame_id != target_frame_id:
            transform = self.transforms.get(frame_id)
            if transform is None:
                raise ReferenceFrameError(
                    f"No transform chain from '{source_frame_id}' to '{target_frame_id}' "
                    f"(stopped at '{frame_id}')"
                )
            matrix = transform.matrix() @ matrix
            frame_id = transform.parent_frame_id
            if frame_id in visited:
                raise ReferenceFrameError(f"Cycle in frame graph at '{frame_id}'")
            visited.add(frame_id)
        return matrix
