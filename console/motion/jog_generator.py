"""
Jog Motion Generator

Velocity-integrated manual motion. Each jog value is a fraction of the
configured velocity in [-1.0, 1.0]; every tick the generator advances its
internal target by jog * velocity * elapsed time.

Two modes, selected by whichever setter was called last:
- joint: 9 jog values (6 robot joints, 3 external joints)
- cartesian: translation XYZ and orientation ABC jog, plus optional
  external-axis jog
"""

import threading
from typing import Optional, Sequence

from common.constants import NUM_JOINTS, NUM_ROBOT_JOINTS

from .position_set import PositionSet

DEFAULT_JOG_VELOCITY = 10.0


def _clamp(value: float) -> float:
    return max(-1.0, min(1.0, float(value)))


def _copy_into(target: list, values: Sequence[float], clamp: bool = False):
    for i in range(min(len(values), len(target))):
        target[i] = _clamp(values[i]) if clamp else float(values[i])


class JogMotionGenerator:
    """
    Position source for jogging.

    Thread-safety: setters are called from the operator side while
    get_position_set() runs on the send timer thread; both take a lock.
    """

    def __init__(self, velocity: float = DEFAULT_JOG_VELOCITY,
                 cartesian_velocity: float = DEFAULT_JOG_VELOCITY):
        """
        Args:
            velocity: Joint velocity at jog 1.0 (units per second)
            cartesian_velocity: Cartesian velocity at jog 1.0 (units per second),
                used for translation and orientation
        """
        self.velocity = velocity
        self.cartesian_velocity = cartesian_velocity

        self._lock = threading.Lock()
        self._cartesian_mode = False

        # Integrated target
        self._joints = [0.0] * NUM_JOINTS
        self._translation = [0.0, 0.0, 0.0]
        self._orientation = [0.0, 0.0, 0.0]

        # Jog fractions
        self._joint_jog = [0.0] * NUM_JOINTS
        self._translation_jog = [0.0, 0.0, 0.0]
        self._orientation_jog = [0.0, 0.0, 0.0]

    @property
    def is_cartesian(self) -> bool:
        with self._lock:
            return self._cartesian_mode

    def set_jog(self, jog_values: Sequence[float]):
        """
        Set joint jog values and switch to joint mode.

        Args:
            jog_values: Up to 9 fractions (6 robot joints, 3 external joints),
                clamped to [-1.0, 1.0]
        """
        with self._lock:
            _copy_into(self._joint_jog, jog_values, clamp=True)
            self._cartesian_mode = False

    def set_cartesian_jog(self, translation: Sequence[float], orientation: Sequence[float],
                          external: Optional[Sequence[float]] = None):
        """
        Set cartesian jog values and switch to cartesian mode.

        Args:
            translation: X, Y, Z fractions
            orientation: A, B, C fractions
            external: Optional fractions for the 3 external axes
        """
        with self._lock:
            _copy_into(self._translation_jog, translation, clamp=True)
            _copy_into(self._orientation_jog, orientation, clamp=True)
            if external is not None:
                for i, value in enumerate(list(external)[:NUM_JOINTS - NUM_ROBOT_JOINTS]):
                    self._joint_jog[NUM_ROBOT_JOINTS + i] = _clamp(value)
            self._cartesian_mode = True

    def reset_jog(self):
        """Set every jog value to zero; the mode is kept."""
        with self._lock:
            self._joint_jog = [0.0] * NUM_JOINTS
            self._translation_jog = [0.0, 0.0, 0.0]
            self._orientation_jog = [0.0, 0.0, 0.0]

    def set_joints(self, joints: Sequence[float]):
        """
        Re-anchor the joint integrator to an absolute position.

        Call after (re)connecting so jogging starts at the robot's actual
        position instead of jumping to a stale target.
        """
        with self._lock:
            _copy_into(self._joints, joints)

    def set_position(self, position: PositionSet):
        """Re-anchor joints and cartesian pose to a feedback position."""
        with self._lock:
            _copy_into(self._joints, position.joints)
            _copy_into(self._translation, position.cartesian_position)
            _copy_into(self._orientation, position.cartesian_orientation)

    def get_joints(self, elapsed_ms: float) -> tuple:
        """Integrate the joint jog over elapsed_ms and return all 9 joints."""
        with self._lock:
            self._integrate_joints(0, NUM_JOINTS, elapsed_ms)
            return tuple(self._joints)

    def get_position_set(self, current_position: PositionSet, elapsed_ms: float) -> PositionSet:
        """
        Advance the target and return it.

        Platform values are taken over from the current position.
        """
        with self._lock:
            if not self._cartesian_mode:
                self._integrate_joints(0, NUM_JOINTS, elapsed_ms)
                return current_position.replace(joints=tuple(self._joints), is_cartesian=False)

            step = self.cartesian_velocity * 0.001 * elapsed_ms
            for i in range(3):
                self._translation[i] += self._translation_jog[i] * step
                self._orientation[i] += self._orientation_jog[i] * step
            self._integrate_joints(NUM_ROBOT_JOINTS, NUM_JOINTS, elapsed_ms)

            # Robot joints are not authoritative in cartesian mode; report the
            # measured ones so every slot holds real data
            joints = current_position.robot_joints + tuple(self._joints[NUM_ROBOT_JOINTS:])
            return current_position.replace(
                joints=joints,
                cartesian_position=tuple(self._translation),
                cartesian_orientation=tuple(self._orientation),
                is_cartesian=True
            )

    def _integrate_joints(self, first: int, last: int, elapsed_ms: float):
        step = self.velocity * 0.001 * elapsed_ms
        for i in range(first, last):
            self._joints[i] += self._joint_jog[i] * step
