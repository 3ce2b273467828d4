"""
Deployment layer: deployable models, pin boards, the HTTP API and its client.
"""

from tabdeploy.deploy.board import FolderBoard, vetiver_pin_read, vetiver_pin_write
from tabdeploy.deploy.docker import prepare_docker
from tabdeploy.deploy.endpoint import ModelEndpoint
from tabdeploy.deploy.errors import EndpointError, PinError, PinNotFoundError, PrototypeError
from tabdeploy.deploy.server import create_server, run_api
from tabdeploy.deploy.vetting import DeployableModel

__all__ = [
    "DeployableModel",
    "EndpointError",
    "FolderBoard",
    "ModelEndpoint",
    "PinError",
    "PinNotFoundError",
    "PrototypeError",
    "create_server",
    "prepare_docker",
    "run_api",
    "vetiver_pin_read",
    "vetiver_pin_write",
]
