"""Single-agent ReAct loop: search, scrape, answer"""
import asyncio
import json
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage, SystemMessage, ToolMessage
from langchain_core.messages.tool import ToolCall
from langchain_core.runnables import RunnableConfig
from langchain_core.tools import BaseTool
from langgraph.graph import END, StateGraph

from ..config import config as app_config
from ..state.agent_state import AgentState
from ..tools import build_tools
from ..utils.structured_logger import get_logger
from .messages import extract_text, tool_content
from .system_prompt import get_system_prompt

logger = get_logger(__name__)

EMPTY_ANSWER = "Sorry, I could not produce an answer to that."


class ResearchAgent:
    """Search-and-scrape research agent for one chat turn

    Workflow:
    1. reasoning: the model answers, or asks for one or more tool calls
    2. action: all requested tools run concurrently, results go back as ToolMessages
    3. loop until the model answers without tools or max_steps model calls were made

    The agent is built per turn: its tools are bound to the turn's abort event.
    """

    def __init__(
        self,
        llm: BaseChatModel,
        tools: Optional[List[BaseTool]] = None,
        abort_event: Optional[asyncio.Event] = None,
        max_steps: Optional[int] = None,
        tool_timeout: Optional[float] = None,
    ):
        """
        Args:
            llm: chat model supporting tool calling
            tools: tools to expose (defaults to searchWeb + scrapePages)
            abort_event: set to cancel in-flight tool requests
            max_steps: cap on model calls per turn
            tool_timeout: seconds before a single tool call is abandoned
        """
        self.llm = llm
        self.abort_event = abort_event or asyncio.Event()
        self.tools = tools if tools is not None else build_tools(self.abort_event)
        self.max_steps = max_steps or app_config.MAX_STEPS
        self.tool_timeout = tool_timeout or app_config.TOOL_TIMEOUT_S
        self.system_prompt = get_system_prompt()
        self.app = self._build_graph()

        # filled in by stream_turn
        self.response_messages: List[BaseMessage] = []
        self.step_count = 0
        self.finish_reason: Optional[str] = None

    def _build_graph(self):
        """Build the ReAct workflow

        reasoning -> (tool calls and steps left?)
            yes -> action -> reasoning
            no  -> END
        """
        workflow = StateGraph(AgentState)

        workflow.add_node("reasoning", self.call_model)
        workflow.add_node("action", self.call_tools)

        workflow.set_entry_point("reasoning")

        workflow.add_conditional_edges(
            "reasoning",
            self.should_continue,
            {
                "action": "action",
                END: END
            }
        )
        workflow.add_edge("action", "reasoning")

        return workflow.compile()

    async def call_model(self, state: AgentState, config: RunnableConfig = None) -> dict:
        """Reasoning node: one model call over the whole history"""
        messages = state["messages"]
        step = state.get("step_count", 0) + 1

        logger.info("Reasoning step", step=step, max_steps=self.max_steps, message_count=len(messages))

        model = self.llm.bind_tools(self.tools) if self.tools else self.llm
        full_messages = [SystemMessage(content=self.system_prompt), *messages]

        # the response object is returned as-is so streamed tokens are not replayed
        response = await model.ainvoke(full_messages, config=config)

        if not extract_text(response) and not getattr(response, "tool_calls", None):
            logger.warning("Model returned an empty message", step=step)
            response = AIMessage(content=EMPTY_ANSWER)

        if response.tool_calls:
            logger.info("Model requested tools", step=step, tools=[call["name"] for call in response.tool_calls])
        else:
            logger.info("Model answered", step=step, length=len(extract_text(response)))

        return {"messages": [response], "step_count": step}

    async def call_tools(self, state: AgentState) -> dict:
        """Action node: run every requested tool concurrently

        A failing, unknown or timed-out tool yields an error ToolMessage; its
        siblings keep running and the loop continues.
        """
        last_message = state["messages"][-1]
        if not isinstance(last_message, AIMessage) or not last_message.tool_calls:
            logger.warning("Action node reached without tool calls")
            return {}

        tools_map = {tool.name: tool for tool in self.tools}

        async def run_one(call: ToolCall) -> ToolMessage:
            name = call["name"]
            args = call.get("args") or {}
            call_id = call["id"]

            tool = tools_map.get(name)
            if tool is None:
                logger.warning("Unknown tool requested", tool=name)
                return ToolMessage(
                    content=json.dumps({"error": f"Unknown tool '{name}'"}, ensure_ascii=False),
                    tool_call_id=call_id,
                    name=name,
                    status="error",
                )

            try:
                result = await asyncio.wait_for(tool.ainvoke(args), timeout=self.tool_timeout)
            except asyncio.TimeoutError:
                error = f"Tool '{name}' timed out after {self.tool_timeout:g}s"
            except Exception as e:
                error = f"Tool '{name}' failed: {e}"
            else:
                logger.info("Tool finished", tool=name)
                return ToolMessage(content=tool_content(result), tool_call_id=call_id, name=name)

            logger.warning("Tool failed", tool=name, error=error)
            return ToolMessage(
                content=json.dumps({"error": error}, ensure_ascii=False),
                tool_call_id=call_id,
                name=name,
                status="error",
            )

        tool_outputs = await asyncio.gather(*[run_one(call) for call in last_message.tool_calls])
        return {"messages": list(tool_outputs)}

    def should_continue(self, state: AgentState) -> str:
        """Route after reasoning: "action" while tools are requested and steps remain"""
        last_message = state["messages"][-1]
        step_count = state.get("step_count", 0)

        if not (isinstance(last_message, AIMessage) and last_message.tool_calls):
            return END

        if step_count >= self.max_steps:
            logger.warning("Step limit reached, ending turn", step_count=step_count)
            return END

        return "action"

    async def stream_turn(
        self,
        messages: Sequence[BaseMessage],
        config: Optional[RunnableConfig] = None,
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Run one turn and yield stream frames as they happen

        Frames:
        - {"type": "text", "content": ...}: incremental answer text
        - {"type": "tool_call", "toolCallId", "toolName", "args"}
        - {"type": "tool_result", "toolCallId", "toolName", "result", "isError"}

        When the iterator is exhausted, response_messages holds the AI and
        tool messages of this turn and finish_reason is "stop" or "step-limit".

        Args:
            messages: conversation history
            config: run config (callbacks, metadata)
        """
        run_config: RunnableConfig = dict(config or {})
        run_config.setdefault("recursion_limit", self.max_steps * 2 + 5)

        initial_state = {"messages": list(messages), "step_count": 0}
        self.response_messages = []
        self.step_count = 0
        self.finish_reason = None

        async for mode, chunk in self.app.astream(initial_state, run_config, stream_mode=["messages", "updates"]):
            if mode == "messages":
                message, metadata = chunk
                if metadata.get("langgraph_node") != "reasoning" or not isinstance(message, AIMessage):
                    continue
                token = extract_text(message)
                if token:
                    yield {"type": "text", "content": token}
                continue

            for node, update in chunk.items():
                if not update:
                    continue
                new_messages = update.get("messages", [])
                self.response_messages.extend(new_messages)

                if node == "reasoning":
                    self.step_count = update.get("step_count", self.step_count)
                    for message in new_messages:
                        for call in getattr(message, "tool_calls", None) or []:
                            yield {
                                "type": "tool_call",
                                "toolCallId": call["id"],
                                "toolName": call["name"],
                                "args": call.get("args") or {},
                            }
                elif node == "action":
                    for message in new_messages:
                        yield {
                            "type": "tool_result",
                            "toolCallId": message.tool_call_id,
                            "toolName": message.name,
                            "result": message.content,
                            "isError": message.status == "error",
                        }

        last = self.response_messages[-1] if self.response_messages else None
        self.finish_reason = "step-limit" if isinstance(last, AIMessage) and last.tool_calls else "stop"
        logger.info("Turn finished", steps=self.step_count, finish_reason=self.finish_reason)


def create_agent(llm: BaseChatModel, abort_event: Optional[asyncio.Event] = None, **kwargs) -> ResearchAgent:
    """
    Create a research agent for one turn

    Args:
        llm: chat model
        abort_event: the turn's abort signal

    Returns:
        ResearchAgent
    """
    return ResearchAgent(llm=llm, abort_event=abort_event, **kwargs)
