from __future__ import annotations

import copy
import json
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

import requests

from .analytics import AnalyticsLog
from .conditions import ConditionError, evaluate_condition
from .mcp import ToolError, ToolRegistry
from .ollama import OllamaError
from .storage import RecordStore, millis, utcnow

logger = logging.getLogger("kolosal.workflows")

NODE_TYPES = {"trigger", "ai", "action", "condition", "transform"}
NODE_CATEGORIES = {"ai", "core", "integration", "flow", "human"}
BRANCH_PORTS = {"true": True, "false": False}


class WorkflowError(RuntimeError):
    """Raised when a workflow is malformed or a node fails."""


def seed_workflows() -> List[Dict[str, Any]]:
    return [
        {
            "id": "wf-ai-agent-1",
            "name": "Customer Support AI Agent",
            "description": "Intelligent customer support automation with AI reasoning",
            "status": "active",
            "category": "ai-agent",
            "nodes": [
                {
                    "id": "trigger-1",
                    "type": "trigger",
                    "category": "core",
                    "name": "Webhook Trigger",
                    "description": "Receives customer support requests",
                    "config": {"path": "/webhook/support", "methods": ["POST"]},
                    "position": {"x": 100, "y": 100},
                    "connections": {"input": [], "output": ["ai-agent-1"]},
                    "status": "idle",
                },
                {
                    "id": "ai-agent-1",
                    "type": "ai",
                    "category": "ai",
                    "name": "Support AI Agent",
                    "description": "AI agent that analyzes and responds to support requests",
                    "config": {
                        "model": "gpt-4",
                        "temperature": 0.7,
                        "max_iterations": 5,
                        "system_prompt": (
                            "You are a helpful customer support agent. Analyze the customer request "
                            "and provide appropriate assistance or escalate if needed."
                        ),
                        "tools": ["knowledge_search", "ticket_creation", "escalation"],
                    },
                    "position": {"x": 300, "y": 100},
                    "connections": {"input": ["trigger-1"], "output": ["action-1", "condition-1"]},
                    "status": "idle",
                },
                {
                    "id": "condition-1",
                    "type": "condition",
                    "category": "flow",
                    "name": "Escalation Check",
                    "description": "Determines if human escalation is needed",
                    "config": {
                        "condition": "{{ $node['ai-agent-1'].output.requires_escalation === true }}"
                    },
                    "position": {"x": 500, "y": 50},
                    "connections": {"input": ["ai-agent-1"], "output": ["action-2"]},
                    "status": "idle",
                },
                {
                    "id": "action-1",
                    "type": "action",
                    "category": "integration",
                    "name": "Send Response",
                    "description": "Sends AI-generated response to customer",
                    "config": {"service": "email", "template": "support_response"},
                    "position": {"x": 500, "y": 150},
                    "connections": {"input": ["ai-agent-1"], "output": []},
                    "status": "idle",
                },
                {
                    "id": "action-2",
                    "type": "action",
                    "category": "integration",
                    "name": "Create Escalation Ticket",
                    "description": "Creates ticket for human agent",
                    "config": {"service": "ticketing", "priority": "high"},
                    "position": {"x": 700, "y": 50},
                    "connections": {"input": ["condition-1"], "output": []},
                    "status": "idle",
                },
            ],
            "connections": [
                {"from": "trigger-1", "to": "ai-agent-1", "fromPort": "output", "toPort": "input"},
                {"from": "ai-agent-1", "to": "condition-1", "fromPort": "output", "toPort": "input"},
                {"from": "ai-agent-1", "to": "action-1", "fromPort": "output", "toPort": "input"},
                {"from": "condition-1", "to": "action-2", "fromPort": "true", "toPort": "input"},
            ],
            "triggers": [{"type": "webhook", "config": {"path": "/webhook/support", "methods": ["POST"]}}],
            "variables": {
                "knowledge_base_url": "https://docs.company.com",
                "escalation_threshold": 0.8,
                "max_response_time": 300,
            },
            "created_at": "2024-01-15T10:30:00Z",
            "updated_at": "2024-01-20T14:45:00Z",
            "created_by": "user-1",
            "executions": {
                "total": 142,
                "successful": 134,
                "failed": 8,
                "last_run": "2024-01-20T14:45:00Z",
            },
            "performance": {
                "avg_execution_time": 4.2,
                "success_rate": 94.4,
                "total_runtime": 596.4,
            },
        }
    ]


def validate_workflow(workflow: Dict[str, Any]) -> None:
    """
    Shape checks only: node ids must be unique and connections must name known nodes.
    """
    nodes = workflow.get("nodes", [])
    connections = workflow.get("connections", [])
    if not isinstance(nodes, list) or not isinstance(connections, list):
        raise WorkflowError("Workflow nodes and connections must be lists")
    seen: Set[str] = set()
    for node in nodes:
        if not isinstance(node, dict) or not isinstance(node.get("id"), str) or not node["id"]:
            raise WorkflowError("Every workflow node needs a string id")
        if node["id"] in seen:
            raise WorkflowError(f"Duplicate node id '{node['id']}'")
        if node.get("category") is not None and node["category"] not in NODE_CATEGORIES:
            raise WorkflowError(f"Unknown node category '{node['category']}'")
        if node.get("type") is not None and node["type"] not in NODE_TYPES:
            raise WorkflowError(f"Unknown node type '{node['type']}'")
        seen.add(node["id"])
    for connection in connections:
        if not isinstance(connection, dict):
            raise WorkflowError("Connections must be objects")
        for end in ("from", "to"):
            if connection.get(end) not in seen:
                raise WorkflowError(f"Connection {end} unknown node '{connection.get(end)}'")


class WorkflowStore(RecordStore):
    """
    In-memory workflows plus the history of their executions.
    """

    def __init__(self) -> None:
        self._executions: List[Dict[str, Any]] = []
        super().__init__(seed=seed_workflows)

    def reset(self) -> None:
        with self._lock:
            super().reset()
            self._executions = []

    def create(self, workflow: Dict[str, Any]) -> Dict[str, Any]:
        timestamp = utcnow()
        record = {
            "name": "Untitled Workflow",
            "description": "",
            "status": "draft",
            "category": "custom",
            "nodes": [],
            "connections": [],
            "triggers": [],
            "variables": {},
            "created_by": "user-1",
        }
        record.update(copy.deepcopy(workflow))
        record.update(
            {
                "id": f"wf-{millis()}",
                "created_at": timestamp,
                "updated_at": timestamp,
                "executions": {"total": 0, "successful": 0, "failed": 0},
                "performance": {"avg_execution_time": 0, "success_rate": 0, "total_runtime": 0},
            }
        )
        validate_workflow(record)
        return self.add(record)

    def update_workflow(self, workflow_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        current = self.get(workflow_id)
        if current is None:
            return None
        changes = {key: value for key, value in copy.deepcopy(fields).items() if key not in {"id", "created_at"}}
        merged = dict(current)
        merged.update(changes)
        validate_workflow(merged)
        changes["updated_at"] = utcnow()
        return self.update(workflow_id, changes)

    def record_execution(self, execution: Dict[str, Any]) -> None:
        seconds = execution.get("total_execution_time", 0) / 1000

        def apply(workflow: Dict[str, Any]) -> None:
            stats = workflow.setdefault("executions", {"total": 0, "successful": 0, "failed": 0})
            perf = workflow.setdefault(
                "performance", {"avg_execution_time": 0, "success_rate": 0, "total_runtime": 0}
            )
            stats["total"] = stats.get("total", 0) + 1
            if execution.get("status") == "completed":
                stats["successful"] = stats.get("successful", 0) + 1
            else:
                stats["failed"] = stats.get("failed", 0) + 1
            stats["last_run"] = execution.get("started_at")
            total = stats["total"]
            previous = perf.get("avg_execution_time", 0) or 0
            perf["avg_execution_time"] = round(previous + (seconds - previous) / total, 3)
            perf["success_rate"] = round(stats.get("successful", 0) / total * 100, 1)
            perf["total_runtime"] = round((perf.get("total_runtime", 0) or 0) + seconds, 3)

        with self._lock:
            self._executions.append(copy.deepcopy(execution))
            self.mutate(execution["workflow_id"], apply)

    def executions(self, workflow_id: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._lock:
            items = [item for item in self._executions if not workflow_id or item["workflow_id"] == workflow_id]
            return copy.deepcopy(items)


@dataclass
class WorkflowServices:
    """Collaborators a workflow run can call out to."""

    chat: Callable[[Dict[str, Any]], Dict[str, Any]]
    tools: ToolRegistry
    analytics: AnalyticsLog
    rng: random.Random = field(default_factory=random.Random)
    http_timeout: float = 30


class WorkflowExecutor:
    """
    Depth-first run of a workflow graph starting from its trigger nodes.

    Condition nodes gate outgoing connections whose ``fromPort`` is ``true`` or
    ``false``; a node revisited on the current path aborts the run as a cycle.
    """

    def __init__(
        self,
        workflow: Dict[str, Any],
        input_data: Dict[str, Any],
        services: WorkflowServices,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.workflow = workflow
        self.services = services
        self.clock = clock
        self.nodes = {node["id"]: node for node in workflow.get("nodes", [])}
        self.node_outputs: Dict[str, Any] = {}
        self.execution: Dict[str, Any] = {
            "id": f"exec-{millis()}",
            "workflow_id": workflow["id"],
            "status": "running",
            "started_at": utcnow(),
            "input_data": input_data,
            "execution_path": [],
            "total_execution_time": 0,
        }

    def execute(self) -> Dict[str, Any]:
        started = self.clock()
        try:
            triggers = [node for node in self.workflow.get("nodes", []) if node.get("type") == "trigger"]
            if not triggers:
                raise WorkflowError("No trigger node found in workflow")
            for trigger in triggers:
                self._execute_node(trigger, self.execution["input_data"], [])
            self.execution["status"] = "completed"
        except (WorkflowError, ToolError, OllamaError, requests.RequestException) as exc:
            self.execution["status"] = "failed"
            self.execution["error"] = str(exc)
            logger.warning("Workflow %s failed: %s", self.workflow["id"], exc)
        self.execution["completed_at"] = utcnow()
        self.execution["total_execution_time"] = int((self.clock() - started) * 1000)
        self.execution["output_data"] = dict(self.node_outputs)
        self._record_analytics(self.execution["status"] == "completed")
        logger.info(
            "Workflow %s execution %s finished status=%s in %dms",
            self.workflow["id"],
            self.execution["id"],
            self.execution["status"],
            self.execution["total_execution_time"],
        )
        return self.execution

    def _execute_node(self, node: Dict[str, Any], input_data: Any, path: List[str]) -> Any:
        if node["id"] in path:
            raise WorkflowError(f"Cycle detected at node '{node['id']}'")
        started = self.clock()
        step: Dict[str, Any] = {
            "node_id": node["id"],
            "status": "running",
            "started_at": utcnow(),
            "input": input_data,
            "execution_time": 0,
        }
        self.execution["execution_path"].append(step)
        try:
            output = self._dispatch(node, input_data)
        except Exception as exc:
            step["status"] = "failed"
            step["error"] = str(exc)
            step["completed_at"] = utcnow()
            step["execution_time"] = int((self.clock() - started) * 1000)
            if isinstance(exc, (WorkflowError, ToolError, OllamaError, requests.RequestException)):
                raise
            raise WorkflowError(f"Node '{node['id']}' failed: {exc}") from exc
        step["status"] = "completed"
        step["output"] = output
        step["completed_at"] = utcnow()
        step["execution_time"] = int((self.clock() - started) * 1000)
        self.node_outputs[node["id"]] = output

        branch = output.get("result") if _is_condition(node) and isinstance(output, dict) else None
        for connection in self.workflow.get("connections", []):
            if connection.get("from") != node["id"]:
                continue
            target = self.nodes.get(connection.get("to"))
            if target is None:
                continue
            port = str(connection.get("fromPort", "")).lower()
            if branch is not None and port in BRANCH_PORTS and BRANCH_PORTS[port] != bool(branch):
                self._skip(target, output)
                continue
            self._execute_node(target, output, path + [node["id"]])
        return output

    def _skip(self, node: Dict[str, Any], input_data: Any) -> None:
        timestamp = utcnow()
        self.execution["execution_path"].append(
            {
                "node_id": node["id"],
                "status": "skipped",
                "started_at": timestamp,
                "completed_at": timestamp,
                "input": input_data,
                "execution_time": 0,
            }
        )

    def _dispatch(self, node: Dict[str, Any], input_data: Any) -> Any:
        category = node.get("category")
        data = input_data if isinstance(input_data, dict) else {"value": input_data}
        if category == "ai":
            return self._execute_ai(node, data)
        if category == "core":
            return self._execute_core(node, data)
        if category == "integration":
            return self._execute_integration(node, data)
        if category == "flow":
            return self._execute_flow(node, data)
        raise WorkflowError(f"Unknown node category: {category}")

    # ai

    def _execute_ai(self, node: Dict[str, Any], data: Dict[str, Any]) -> Dict[str, Any]:
        name = node.get("name")
        config = node.get("config") or {}
        if name in {"Support AI Agent", "AI Agent"}:
            return self._ai_agent(config, data)
        if name == "LLM Chain":
            return self._llm_chain(config, data)
        if name == "Text Analyzer":
            return self._text_analyzer(data)
        raise WorkflowError(f"Unknown AI node: {name}")

    def _chat(self, config: Dict[str, Any], system: str, user: str) -> Dict[str, Any]:
        return self.services.chat(
            {
                "model": config.get("model") or "phi",
                "messages": [
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                "temperature": config.get("temperature") or 0.7,
                "max_tokens": config.get("max_tokens") or 512,
            }
        )

    def _ai_agent(self, config: Dict[str, Any], data: Dict[str, Any]) -> Dict[str, Any]:
        task = data.get("message") or data.get("task") or "Process this request"
        prompt = (
            f"You are an AI agent with the following capabilities: {', '.join(config.get('tools') or [])}.\n\n"
            f"Task: {task}\n"
            f"Context: {json.dumps(data.get('context') or {})}\n\n"
            "Please analyze this task and provide:\n"
            "1. Your response/solution\n"
            "2. Actions you would take\n"
            "3. Your confidence level (0-1)\n"
            "4. Whether this requires human escalation\n\n"
            "Respond in a helpful and detailed manner."
        )
        try:
            result = self._chat(
                config,
                "You are an intelligent AI agent that can analyze tasks and provide comprehensive responses.",
                prompt,
            )
        except (OllamaError, ValueError) as exc:
            logger.warning("AI agent fell back to canned output: %s", exc)
            return {
                "response": f"AI Agent successfully handled the task: {data.get('message') or data.get('task') or 'Process request'}",
                "actions_taken": ["Task analysis", "Response generation", "Quality validation"],
                "requires_escalation": False,
                "confidence": 0.92,
                "reasoning": "AI agent completed task processing with high confidence",
            }
        rng = self.services.rng
        return {
            "response": result.get("response") or "AI Agent task completed successfully",
            "actions_taken": ["Analyzed task", "Generated response", "Evaluated confidence"],
            "requires_escalation": rng.random() < 0.2,
            "confidence": 0.85 + rng.random() * 0.15,
            "reasoning": "AI agent successfully processed the request using advanced reasoning capabilities",
            "tokens": result.get("tokens_used") or 0,
        }

    def _llm_chain(self, config: Dict[str, Any], data: Dict[str, Any]) -> Dict[str, Any]:
        user = data.get("prompt") or data.get("message") or "Hello, please respond to this workflow test."
        try:
            result = self._chat(config, config.get("system_prompt") or "You are a helpful assistant.", user)
        except (OllamaError, ValueError) as exc:
            logger.warning("LLM chain fell back to canned output: %s", exc)
            return {
                "response": f"Workflow completed successfully. Task: {data.get('message') or data.get('prompt') or 'Test task'}",
                "tokens": 50,
                "model": config.get("model") or "phi",
                "response_time": 1.2,
            }
        return {
            "response": result.get("response") or "LLM response completed",
            "tokens": result.get("tokens_used") or 0,
            "model": result.get("model") or config.get("model") or "phi",
            "response_time": result.get("response_time") or 0,
        }

    def _text_analyzer(self, data: Dict[str, Any]) -> Dict[str, Any]:
        result = self.services.tools.execute(
            "sentiment_analyzer", {"text": data.get("text") or data.get("message")}
        )
        sentiment = result.get("sentiment") or {}
        return {
            "sentiment": sentiment,
            "confidence": sentiment.get("confidence", 0.9),
            "entities": [],
            "categories": [],
        }

    # core

    def _execute_core(self, node: Dict[str, Any], data: Dict[str, Any]) -> Any:
        name = node.get("name")
        if name == "HTTP Request":
            return self._http_request(node.get("config") or {}, data)
        if node.get("type") == "trigger" or name in {"Webhook Trigger", "Manual Trigger", "Schedule Trigger"}:
            return data
        raise WorkflowError(f"Unknown core node: {name}")

    def _http_request(self, config: Dict[str, Any], data: Dict[str, Any]) -> Dict[str, Any]:
        url = config.get("url")
        if not url:
            raise WorkflowError("HTTP Request node requires a 'url'")
        method = str(config.get("method") or "GET").upper()
        response = requests.request(
            method,
            url,
            headers=config.get("headers") or {},
            json=data if method != "GET" else None,
            timeout=self.services.http_timeout,
        )
        try:
            body: Any = response.json()
        except ValueError:
            body = response.text
        return {"status": response.status_code, "data": body, "headers": dict(response.headers)}

    # integration

    def _execute_integration(self, node: Dict[str, Any], data: Dict[str, Any]) -> Dict[str, Any]:
        name = node.get("name")
        config = node.get("config") or {}
        if name == "Send Response":
            logger.info("Sending response: %s", data.get("response"))
            return {"sent": True, "message_id": f"msg-{millis()}"}
        if name == "Create Escalation Ticket":
            logger.info("Creating escalation ticket for: %s", data.get("message") or data.get("response"))
            return {"ticket_id": f"ticket-{millis()}", "priority": config.get("priority")}
        raise WorkflowError(f"Unknown integration node: {name}")

    # flow

    def _execute_flow(self, node: Dict[str, Any], data: Dict[str, Any]) -> Dict[str, Any]:
        if not _is_condition(node):
            raise WorkflowError(f"Unknown flow node: {node.get('name')}")
        condition = (node.get("config") or {}).get("condition")
        try:
            result = evaluate_condition(
                condition,
                node_outputs=self.node_outputs,
                input_data=self.execution["input_data"],
                variables=self.workflow.get("variables") or {},
            )
        except ConditionError as exc:
            raise WorkflowError(f"Invalid condition on node '{node['id']}': {exc}") from exc
        return {"result": result}

    def _record_analytics(self, success: bool) -> None:
        tokens = 0
        for step in self.execution["execution_path"]:
            output = step.get("output")
            if isinstance(output, dict) and isinstance(output.get("tokens"), (int, float)):
                tokens += output["tokens"]
        self.services.analytics.record(
            model=f"workflow-{self.workflow['id']}",
            tokens=tokens,
            response_time=self.execution["total_execution_time"] / 1000,
            success=success,
            cost=0.001,
        )


def _is_condition(node: Dict[str, Any]) -> bool:
    config = node.get("config") or {}
    return node.get("category") == "flow" and "condition" in config
