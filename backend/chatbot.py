"""
Chat command interpreter.

A message arrives either with an explicit action (the web form already knows
what it wants) or as free text from a messaging channel. Either way it is
resolved to one of five intents, run against the task store, and answered
with a reply string.

Free-text classification is keyword based and first-match-wins:

    "#to-do <text>"              -> add <text>
    contains "list"/"show tasks" -> list
    contains "complete"/"done"   -> complete
    anything else                -> help reply

The classifier is pluggable (IntentClassifier) so a smarter one can replace
the keyword rules without touching the dispatcher.
"""
import re
from dataclasses import dataclass, field
from typing import Optional, Protocol, Union, assert_never

import structlog

from config import COMPLETE_INCLUDES_COMPLETED, LIST_LIMIT
from exceptions import EnrichmentFault, InvalidAction, NotFound, TaskFlowError
from models import Action, ChatbotData, ChatbotResponse, EnhancementResult, Task

log = structlog.get_logger(__name__)

TODO_MARKER = re.compile(r"#to-do\s+(.+)", re.IGNORECASE | re.DOTALL)
ADD_TASK_PREFIX = re.compile(r"add task:\s*(.*)", re.IGNORECASE | re.DOTALL)
COMPLETE_WORDS = re.compile(r"complete|done", re.IGNORECASE)

# Patterns the web chat widget uses to pull a title out of what was typed
UI_ADD_PATTERN = re.compile(r"add task[:\s]+(.+)", re.IGNORECASE | re.DOTALL)
UI_COMPLETE_PATTERN = re.compile(r"(?:complete|done)[:\s]+(.+)", re.IGNORECASE | re.DOTALL)

# "list" never shows more than this many tasks
MAX_LIST_LIMIT = 10

# Legacy wire name for free-text processing
ACTION_ALIASES = {"process_whatsapp": Action.PROCESS_FREE_TEXT}

HELP_REPLY = (
    'Hi! Send me "#to-do [task]" to add a task, "list" to see your tasks, '
    'or "done [task]" to complete one.'
)


# Intents
@dataclass(frozen=True)
class AddTask:
    title: str


@dataclass(frozen=True)
class EnhanceTask:
    title: str


@dataclass(frozen=True)
class ListTasks:
    pass


@dataclass(frozen=True)
class CompleteTask:
    search: str


@dataclass(frozen=True)
class FreeText:
    message: str


Intent = Union[AddTask, EnhanceTask, ListTasks, CompleteTask, FreeText]


class TaskStore(Protocol):
    """The parts of the task store the dispatcher uses (see database.py)."""

    def create_task_db(
        self, user_id: str, title: str, description: str = "",
        source: str = "web", enhanced: bool = False,
    ) -> Task: ...

    def list_recent_tasks_db(self, user_id: str, limit: int = 10, offset: int = 0) -> list[Task]: ...

    def complete_task_by_title_db(
        self, user_id: str, text: str, include_completed: bool = True,
    ) -> Optional[Task]: ...


class Enhancer(Protocol):
    async def enhance(self, title: str) -> EnhancementResult: ...


class IntentClassifier(Protocol):
    def classify(self, message: str) -> Optional[Intent]:
        """Return the intent for a free-text message, or None if nothing matched."""
        ...


# Payload extraction
def extract_add_title(message: str) -> str:
    """
    Title for an add: text after "add task:", else text after the #to-do
    marker, else the whole message. Never empty for a non-blank message.
    """
    for pattern in (ADD_TASK_PREFIX, TODO_MARKER):
        match = pattern.search(message)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return message.strip()


def extract_complete_key(message: str) -> str:
    """Search key for a complete: the message without the words complete/done."""
    return COMPLETE_WORDS.sub("", message).strip(" \t\r\n:")


class KeywordIntentClassifier:
    """Keyword and marker rules used for free-text messages."""

    def classify(self, message: str) -> Optional[Intent]:
        if TODO_MARKER.search(message):
            return AddTask(extract_add_title(message))

        lower = message.lower()
        if "list" in lower or "show tasks" in lower:
            return ListTasks()
        if "complete" in lower or "done" in lower:
            return CompleteTask(extract_complete_key(message))
        return None


def preclassify(message: str) -> Action:
    """
    Quick guess at the action from what was typed in the web chat widget.

    This can disagree with KeywordIntentClassifier; once a message is sent as
    process_free_text the server-side rules decide.
    """
    lower = message.lower()
    if "add" in lower or "create" in lower:
        return Action.ADD_TASK
    if "list" in lower or "show" in lower:
        return Action.LIST_TASKS
    if "complete" in lower or "done" in lower:
        return Action.COMPLETE_TASK
    if "enhance" in lower:
        return Action.ENHANCE_TASK
    return Action.PROCESS_FREE_TEXT


def parse_message_data(message: str, action: Optional[Action] = None) -> ChatbotData:
    """
    Build the {title} payload the chat widget sends alongside its action.

    A complete message without a leading "complete"/"done" ("milk is done")
    falls back to the text left once those words are removed.
    """
    for pattern in (UI_ADD_PATTERN, UI_COMPLETE_PATTERN):
        match = pattern.search(message)
        if match:
            return ChatbotData(title=match.group(1).strip())
    if action is Action.COMPLETE_TASK:
        return ChatbotData(title=extract_complete_key(message) or None)
    return ChatbotData(title=message.strip())


def parse_action(action: str) -> Action:
    key = (action or "").strip().lower()
    if key in ACTION_ALIASES:
        return ACTION_ALIASES[key]
    try:
        return Action(key)
    except ValueError:
        raise InvalidAction("Invalid action") from None


def format_task_list(tasks: list[Task]) -> str:
    if not tasks:
        return "Your recent tasks:\n\n(no tasks yet)"
    lines = [f"{'[x]' if task.completed else '[ ]'} {task.title}" for task in tasks]
    return "Your recent tasks:\n\n" + "\n".join(lines)


@dataclass
class ChatbotResult:
    reply_text: str
    intent_executed: Optional[Action] = None
    task: Optional[Task] = None
    tasks: Optional[list[Task]] = None
    enhancement: Optional[EnhancementResult] = None
    original: Optional[str] = None
    suggestions: list[str] = field(default_factory=list)

    def to_response(self) -> ChatbotResponse:
        return ChatbotResponse(
            success=True,
            message=self.reply_text,
            intent=self.intent_executed.value if self.intent_executed else None,
            task=self.task,
            tasks=self.tasks,
            enhancement=self.enhancement,
            original=self.original,
            suggestions=self.suggestions if self.intent_executed == Action.ENHANCE_TASK else None,
        )


class ChatbotDispatcher:
    """Resolves requests to intents and runs them against the store."""

    def __init__(
        self,
        store: TaskStore,
        enhancer: Enhancer,
        classifier: Optional[IntentClassifier] = None,
        list_limit: int = LIST_LIMIT,
        complete_includes_completed: bool = COMPLETE_INCLUDES_COMPLETED,
    ) -> None:
        self.store = store
        self.enhancer = enhancer
        self.classifier = classifier or KeywordIntentClassifier()
        self.list_limit = max(1, min(list_limit, MAX_LIST_LIMIT))
        self.complete_includes_completed = complete_includes_completed

    def resolve(self, action: str, title: Optional[str] = None, message: Optional[str] = None) -> Intent:
        """Turn an action key plus payload into an intent. Raises InvalidAction."""
        parsed = parse_action(action)
        title = (title or "").strip()
        message = (message or "").strip()

        if parsed is Action.ADD_TASK or parsed is Action.ENHANCE_TASK:
            title = title or (extract_add_title(message) if message else "")
            if not title:
                raise InvalidAction("Missing task title")
            return AddTask(title) if parsed is Action.ADD_TASK else EnhanceTask(title)
        if parsed is Action.LIST_TASKS:
            return ListTasks()
        if parsed is Action.COMPLETE_TASK:
            search = title or (extract_complete_key(message) if message else "")
            if not search:
                raise InvalidAction("Missing task title")
            return CompleteTask(search)
        if parsed is Action.PROCESS_FREE_TEXT:
            return FreeText(message or title)
        assert_never(parsed)

    async def interpret(
        self,
        action: str,
        user_id: str,
        title: Optional[str] = None,
        message: Optional[str] = None,
        source: Optional[str] = None,
    ) -> ChatbotResult:
        intent = self.resolve(action, title, message)
        log.info("intent_resolved", intent=type(intent).__name__, user_id=user_id, source=source)
        return await self.execute(intent, user_id, source)

    async def handle(
        self,
        action: str,
        user_id: str,
        title: Optional[str] = None,
        message: Optional[str] = None,
        source: Optional[str] = None,
    ) -> tuple[int, ChatbotResponse]:
        """
        interpret() with every failure turned into a reply.
        Returns (http_status, response).
        """
        try:
            result = await self.interpret(action, user_id, title, message, source)
        except TaskFlowError as e:
            log.warning("chatbot_request_failed", action=action, error=e.message, status=e.status_code)
            return e.status_code, ChatbotResponse(success=False, message=e.message, error=e.message)
        except Exception:
            log.exception("chatbot_request_crashed", action=action)
            return 500, ChatbotResponse(success=False, message="Server error", error="Server error")
        return 200, result.to_response()

    async def execute(self, intent: Intent, user_id: str, source: Optional[str] = None) -> ChatbotResult:
        if isinstance(intent, AddTask):
            return await self._add(intent.title, user_id, source)
        if isinstance(intent, EnhanceTask):
            return await self._enhance_only(intent.title)
        if isinstance(intent, ListTasks):
            return self._list(user_id)
        if isinstance(intent, CompleteTask):
            return self._complete(intent.search, user_id)
        if isinstance(intent, FreeText):
            return await self._free_text(intent.message, user_id, source)
        assert_never(intent)

    async def enhance_or_fallback(self, title: str) -> EnhancementResult:
        try:
            return await self.enhancer.enhance(title)
        except EnrichmentFault as e:
            log.warning("enhancement_failed", error=e.message)
        except Exception as e:
            log.warning("enhancement_failed", error=repr(e))
        return EnhancementResult(title=title, description="", steps=[], enhanced_by="fallback")

    async def _add(self, title: str, user_id: str, source: Optional[str]) -> ChatbotResult:
        enhancement = await self.enhance_or_fallback(title)
        task = self.store.create_task_db(
            user_id,
            enhancement.title or title,
            description=enhancement.description,
            source=source or "chatbot",
            enhanced=not enhancement.fallback,
        )
        if enhancement.fallback:
            reply = f'Task created: "{task.title}" (AI enhancement unavailable, saved as typed)'
        else:
            reply = f'Task created and enhanced with AI: "{task.title}"'
        return ChatbotResult(reply, Action.ADD_TASK, task=task, enhancement=enhancement)

    async def _enhance_only(self, title: str) -> ChatbotResult:
        enhancement = await self.enhance_or_fallback(title)
        lines = [f'Original: "{title}"', f'Enhanced: "{enhancement.title}"']
        if enhancement.description:
            lines.append(enhancement.description)
        if enhancement.steps:
            lines.append("Suggested steps:")
            lines.extend(f"{i}. {step}" for i, step in enumerate(enhancement.steps, start=1))
        return ChatbotResult(
            "\n".join(lines),
            Action.ENHANCE_TASK,
            enhancement=enhancement,
            original=title,
            suggestions=list(enhancement.steps),
        )

    def _list(self, user_id: str) -> ChatbotResult:
        tasks = self.store.list_recent_tasks_db(user_id, limit=self.list_limit)
        return ChatbotResult(format_task_list(tasks), Action.LIST_TASKS, tasks=tasks)

    def _complete(self, search: str, user_id: str) -> ChatbotResult:
        if not search.strip():
            # An empty key would match every task
            raise InvalidAction("Tell me which task to complete")
        task = self.store.complete_task_by_title_db(
            user_id, search, include_completed=self.complete_includes_completed
        )
        if not task:
            raise NotFound(f'Could not find task matching "{search}"')
        return ChatbotResult(f'Task "{task.title}" marked as complete!', Action.COMPLETE_TASK, task=task)

    async def _free_text(self, message: str, user_id: str, source: Optional[str]) -> ChatbotResult:
        intent = self.classifier.classify(message) if message else None
        if intent is None or isinstance(intent, FreeText):
            return ChatbotResult(HELP_REPLY)
        log.info("free_text_classified", intent=type(intent).__name__, user_id=user_id)
        return await self.execute(intent, user_id, source)
