from .org import Region, Area, Branch, Staff
from .auth import SessionToken
from .baseline import BaselineBalance
from .mapping import AccountMapping, ProductKpiMapping
from .plans import PlanShareConfig, Plan, StaffPlan
from .cbs import CBSValidation, CBSDiscrepancy
from .tasks import DailyTask
from .performance import PerformanceScore, BehavioralEvaluation
from .audit import AuditEvent

__all__ = [
    'Region', 'Area', 'Branch', 'Staff',
    'SessionToken',
    'BaselineBalance',
    'AccountMapping', 'ProductKpiMapping',
    'PlanShareConfig', 'Plan', 'StaffPlan',
    'CBSValidation', 'CBSDiscrepancy',
    'DailyTask',
    'PerformanceScore', 'BehavioralEvaluation',
    'AuditEvent',
]
