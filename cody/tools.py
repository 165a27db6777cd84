"""Tool definitions, implementations and the name-based registry."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolResult:
    success: bool
    output: str
    # Failure worded so the model cannot claim the action happened
    silent: bool = False


@dataclass(frozen=True)
class ToolParameter:
    name: str
    type: str
    description: str


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    parameters: tuple[ToolParameter, ...] = ()
    required: tuple[str, ...] = ()

    def to_schema(self) -> dict:
        """OpenAI function-tool schema sent to the model."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {
                        p.name: {"type": p.type, "description": p.description}
                        for p in self.parameters
                    },
                    "required": list(self.required),
                },
            },
        }


@dataclass(frozen=True)
class Tool:
    definition: ToolDefinition
    handler: Callable[..., ToolResult] = field(compare=False)


class ToolRegistry:
    """Maps tool names to implementations. Built once, read-only afterwards."""

    def __init__(self, tools: list[Tool]):
        self._tools: dict[str, Tool] = {}
        for tool in tools:
            name = tool.definition.name
            if name in self._tools:
                raise ValueError(f"duplicate tool name: {name!r}")
            self._tools[name] = tool

    def definitions(self) -> list[ToolDefinition]:
        return [t.definition for t in self._tools.values()]

    def schemas(self) -> list[dict]:
        return [d.to_schema() for d in self.definitions()]

    def execute(self, name: str, args: dict) -> ToolResult:
        """Run a tool by exact name. Failures come back as results, never raised."""
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult(False, f"Unknown tool: {name}")

        definition = tool.definition
        missing = [r for r in definition.required if args.get(r) is None]
        if missing:
            return ToolResult(
                False,
                f"Missing required argument(s) for {name}: {', '.join(missing)}",
            )

        declared = {p.name for p in definition.parameters}
        kwargs = {k: v for k, v in args.items() if k in declared}
        try:
            return tool.handler(**kwargs)
        except Exception as e:
            logger.debug("tool %s raised", name, exc_info=True)
            return ToolResult(False, f"{name} failed: {e}")


# ---------------------------------------------------------------------------
# File tools
# ---------------------------------------------------------------------------


def read_file(path: str) -> ToolResult:
    target = Path(str(path))
    try:
        if target.is_dir():
            return ToolResult(
                False,
                f'Error: "{path}" is a directory, not a file. '
                "Use list_directory to see its contents.",
            )
        return ToolResult(True, target.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError) as e:
        return ToolResult(False, f"Failed to read file: {e}")


def write_file(path: str, content: str) -> ToolResult:
    target = Path(str(path))
    content = content if isinstance(content, str) else str(content)
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
    except OSError as e:
        return ToolResult(False, f"Failed to write file: {e}")
    return ToolResult(True, f"Successfully wrote {len(content)} characters to {path}")


def list_directory(path: str = ".") -> ToolResult:
    path = str(path or ".")
    try:
        entries = sorted(Path(path).iterdir(), key=lambda p: p.name)
    except OSError as e:
        return ToolResult(False, f"Failed to list directory: {e}")

    if not entries:
        return ToolResult(True, f'Directory "{path}" is empty')

    lines = []
    for entry in entries:
        try:
            kind = "[dir]" if entry.is_dir() else "[file]"
        except OSError:
            kind = "[?]"
        lines.append(f"{kind} {entry.name}")
    return ToolResult(True, "\n".join(lines))


READ_FILE = ToolDefinition(
    name="read_file",
    description=(
        "Read the contents of a file at the specified path. "
        "Returns the file contents as text."
    ),
    parameters=(
        ToolParameter(
            "path", "string", "The path to the file to read (relative or absolute)"
        ),
    ),
    required=("path",),
)

WRITE_FILE = ToolDefinition(
    name="write_file",
    description=(
        "Create or overwrite a file with the given content. "
        "Creates parent directories if they don't exist."
    ),
    parameters=(
        ToolParameter("path", "string", "The path where the file should be written"),
        ToolParameter("content", "string", "The content to write to the file"),
    ),
    required=("path", "content"),
)

LIST_DIRECTORY = ToolDefinition(
    name="list_directory",
    description=(
        "List all files and directories at the specified path. "
        "Shows file types (file/directory) for each entry."
    ),
    parameters=(
        ToolParameter(
            "path",
            "string",
            "The directory path to list (defaults to current directory if not specified)",
        ),
    ),
)

RUN_COMMAND = ToolDefinition(
    name="run_command",
    description=(
        "Execute a shell command and return its output. "
        "Dangerous commands will prompt for user approval."
    ),
    parameters=(ToolParameter("command", "string", "The shell command to execute"),),
    required=("command",),
)


def build_registry(gate) -> ToolRegistry:
    """The four built-in tools, with run_command going through ``gate``."""
    return ToolRegistry(
        [
            Tool(READ_FILE, read_file),
            Tool(WRITE_FILE, write_file),
            Tool(LIST_DIRECTORY, list_directory),
            Tool(RUN_COMMAND, lambda command: gate.run(str(command))),
        ]
    )
