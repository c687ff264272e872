"""Mentor-student assignments."""

from .router import router

__all__ = ["router"]
