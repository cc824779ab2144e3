"""
Processing Module
处理模块 - 批次与主数据集的合并
"""
from .reconciler import reconcile, has_changed, TRACKED_FIELDS

__all__ = [
    "reconcile",
    "has_changed",
    "TRACKED_FIELDS",
]
