"""
Arena Game Server - Admin Module
Server metrics and host statistics
"""

from .metrics import ServerMetrics, get_system_info

__all__ = ['ServerMetrics', 'get_system_info']
