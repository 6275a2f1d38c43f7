"""Research agent"""
from .research_agent import ResearchAgent, create_agent

__all__ = ["ResearchAgent", "create_agent"]
