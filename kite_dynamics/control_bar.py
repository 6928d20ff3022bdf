"""
Pilot control bar.

The bar is a rigid segment centered at `position`; rotating it about the
world vertical axis pulls one handle back and lets the other forward,
which steers a two-line kite.
"""

from typing import Optional

import numpy as np

from .math3d import quat_from_axis_angle, quat_rotate_vector
from .params import ControlBarConfig, PhysicsConstants
from .state import HandlePositions


class ControlBar:
    """
    Computes handle world positions from bar placement and rotation.

    Usage:
        bar = ControlBar(ControlBarConfig())
        bar.set_rotation(0.2)
        handles = bar.handle_positions()
    """

    def __init__(self, config: Optional[ControlBarConfig] = None,
                 constants: Optional[PhysicsConstants] = None):
        self.config = config if config is not None else ControlBarConfig()
        self.constants = constants if constants is not None else PhysicsConstants()
        self.position = self.config.position.copy()
        self.rotation = 0.0

    def set_rotation(self, angle: float) -> bool:
        """
        Set the bar rotation [rad] about the world y axis.

        Changes smaller than control_deadzone are ignored.

        Returns:
            True if the rotation changed
        """
        if not np.isfinite(angle) or abs(angle - self.rotation) < self.constants.control_deadzone:
            return False
        self.rotation = float(angle)
        return True

    def handle_positions(self) -> HandlePositions:
        half = 0.5 * self.config.width
        q = quat_from_axis_angle(np.array([0.0, 1.0, 0.0]), self.rotation)
        left = self.position + quat_rotate_vector(q, np.array([-half, 0.0, 0.0]))
        right = self.position + quat_rotate_vector(q, np.array([half, 0.0, 0.0]))
        return HandlePositions(left=left, right=right)
