"""Process and observation models built from JacobianFunction."""

from .identity import (create_identity, create_identity_jacobian, create_identity_mapping,
                       identity_broadcast_function, identity_derivative)
from .vehicle import VehicleModel, VehicleParams

__all__ = [
    'create_identity',
    'create_identity_jacobian',
    'create_identity_mapping',
    'identity_broadcast_function',
    'identity_derivative',
    'VehicleModel',
    'VehicleParams'
]
