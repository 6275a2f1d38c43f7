"""Research agent state"""
from typing import TypedDict, Annotated, List
from langchain_core.messages import BaseMessage
import operator


class AgentState(TypedDict):
    """State of one chat turn

    - messages: conversation history plus everything produced this turn
    - step_count: model calls made so far, bounded by config.MAX_STEPS
    """

    # Message history (appended to by each node)
    messages: Annotated[List[BaseMessage], operator.add]

    # Number of reasoning steps taken this turn
    step_count: int
