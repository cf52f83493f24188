"""
Time-series flow record store read by anomaly detection jobs.
"""

from .database import FlowDatabase, FlowStore, InMemoryFlowStore
from .models import FlowRecord
from .seed import build_demo_flows

__all__ = ["FlowDatabase", "FlowStore", "InMemoryFlowStore", "FlowRecord", "build_demo_flows"]
