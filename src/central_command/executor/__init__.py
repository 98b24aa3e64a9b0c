"""Executor collaborators."""

from __future__ import annotations

from central_command.executor.base import Executor
from central_command.executor.intake import HttpExecutor

__all__ = ["Executor", "HttpExecutor"]
