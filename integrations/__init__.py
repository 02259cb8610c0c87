"""
Autopilot Integrations Module

External service integrations for the Codegen agent service.
"""

from .codegen_client import CodegenClient, CodegenConfig, CodegenAPIError

__all__ = ['CodegenClient', 'CodegenConfig', 'CodegenAPIError']
