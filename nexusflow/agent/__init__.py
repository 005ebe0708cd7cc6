from .loop import AgentLoop, AgentResult, AgentState, TraceEntry

__all__ = ["AgentLoop", "AgentResult", "AgentState", "TraceEntry"]
