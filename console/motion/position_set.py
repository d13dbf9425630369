"""
Position set exchanged by every part of the link.

A PositionSet is immutable. Readers on other threads get a reference to a
complete pose and can never observe a half-updated one; producers build a new
instance with replace() instead of mutating fields.
"""

from dataclasses import dataclass, field, replace as dataclass_replace
from typing import Any, Dict, Iterable, Tuple

from common.constants import NUM_JOINTS, NUM_ROBOT_JOINTS


def _fixed(values: Iterable[float], length: int) -> Tuple[float, ...]:
    """Coerce to a tuple of exactly `length` floats (pad with 0.0 / truncate)."""
    result = [float(v) for v in list(values)[:length]]
    result.extend([0.0] * (length - len(result)))
    return tuple(result)


@dataclass(frozen=True)
class PositionSet:
    """
    Robot pose with external axes and mobile platform.

    Attributes:
        joints: 6 robot joints followed by 3 external joints
        cartesian_position: X, Y, Z
        cartesian_orientation: A, B, C
        platform_position: platform X, Y
        platform_heading: platform heading
        is_cartesian: True if the cartesian fields are the authoritative pose
            instead of joints[0..5]; joints[6..8] are valid in both modes
    """
    joints: Tuple[float, ...] = field(default=(0.0,) * NUM_JOINTS)
    cartesian_position: Tuple[float, ...] = (0.0, 0.0, 0.0)
    cartesian_orientation: Tuple[float, ...] = (0.0, 0.0, 0.0)
    platform_position: Tuple[float, ...] = (0.0, 0.0)
    platform_heading: float = 0.0
    is_cartesian: bool = False

    def __post_init__(self):
        object.__setattr__(self, 'joints', _fixed(self.joints, NUM_JOINTS))
        object.__setattr__(self, 'cartesian_position', _fixed(self.cartesian_position, 3))
        object.__setattr__(self, 'cartesian_orientation', _fixed(self.cartesian_orientation, 3))
        object.__setattr__(self, 'platform_position', _fixed(self.platform_position, 2))
        object.__setattr__(self, 'platform_heading', float(self.platform_heading))
        object.__setattr__(self, 'is_cartesian', bool(self.is_cartesian))

    @classmethod
    def zero(cls) -> "PositionSet":
        return cls()

    def replace(self, **changes: Any) -> "PositionSet":
        """Copy with some fields changed"""
        return dataclass_replace(self, **changes)

    @property
    def robot_joints(self) -> Tuple[float, ...]:
        return self.joints[:NUM_ROBOT_JOINTS]

    @property
    def external_joints(self) -> Tuple[float, ...]:
        return self.joints[NUM_ROBOT_JOINTS:]

    def as_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation for status output"""
        return {
            'joints': list(self.joints),
            'cartesian_position': list(self.cartesian_position),
            'cartesian_orientation': list(self.cartesian_orientation),
            'platform_position': list(self.platform_position),
            'platform_heading': self.platform_heading,
            'is_cartesian': self.is_cartesian,
        }

    def describe(self) -> str:
        """One-line summary for log output"""
        robot = " ".join(f"{v:.2f}" for v in self.robot_joints)
        ext = " ".join(f"{v:.2f}" for v in self.external_joints)
        x, y, z = self.cartesian_position
        a, b, c = self.cartesian_orientation
        return (f"Joints: {robot} Ext: {ext} X={x:.2f} Y={y:.2f} Z={z:.2f} "
                f"A={a:.2f} B={b:.2f} C={c:.2f}")
