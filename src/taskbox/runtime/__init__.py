from .base import ContainerRuntime
from .docker import DockerRuntime

__all__ = ["ContainerRuntime", "DockerRuntime"]
