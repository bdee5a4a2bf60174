"""Alert system module."""
from alerts.engine import AlertEvaluator
from alerts.dispatcher import ActionDispatcher
from alerts.history import HistoryRecorder, HistoryPage
from alerts.rules_manager import RulesManager
