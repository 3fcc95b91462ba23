"""Renders the managed block written into the shared GEMINI.md."""

from __future__ import annotations

from .merger import MARKER
from .models import InstallTarget, ResourceCatalog, ResourceGroup

WORKFLOW_GROUP = "workflows"

CODING_STANDARDS = """\
## GLOBAL CODING STANDARDS

### 1. Core Philosophy
- **KISS & YAGNI**: Write the simplest code that works. Do not build for "might need".
- **DRY**: Logic repeated more than twice becomes a function.
- **Single Source of Truth**: Data and configuration are defined in exactly one place.

### 2. Code Quality
- **Self-Documenting Names**: Names say what a thing does (`userHasAccess` over `checkAccess`).
- **One Function, One Job**: If a function name needs "And", split it.
- **Commenting**: Do not narrate what the code does. Comment only the reason behind it.

### 3. Reliability & Security
- **Input Validation**: Validate every input. Never trust the client.
- **Fail Fast & Loud**: Catch and surface errors immediately. Never silently ignore them.
- **Secrets Management**: Never hardcode API keys or passwords. Use `.env`.

### 4. AI-Specific Rules
- **No Hallucinations**: Only use libraries already declared by the project. Ask before adding one.
- **No Placeholders**: Code must be complete and runnable.
- **Step-by-Step Thinking**: For logic longer than ten lines, mark steps with `# Step X: ...`.

### 5. Technology Agnostic
- These rules apply to every language.
- Always follow the language's standard style guide (PEP 8 for Python, and so on).
"""


class ManagedBlockCompiler:
    """Compiles the MineKit-owned section of the shared instruction file."""

    def __init__(
        self,
        catalog: ResourceCatalog,
        target: InstallTarget,
        version: str,
        marker: str = MARKER,
    ) -> None:
        """Initialize compiler.

        The output depends only on its inputs, so rendering twice for the
        same version yields identical blocks.

        Args:
            catalog: Catalog whose workflows become slash commands
            target: Resolved install paths embedded in the block
            version: Version being installed
            marker: Header line the block starts with
        """
        self.catalog = catalog
        self.target = target
        self.version = version
        self.marker = marker

    def compile(self) -> str:
        """Render the full managed block, starting with the marker line."""
        sections = [
            self.marker,
            "",
            self._compile_header(),
            CODING_STANDARDS,
            self._compile_command_table(),
            self._compile_resource_locations(),
            self._compile_execution_guide(),
            self._compile_update_check(),
        ]
        return "\n".join(sections).rstrip() + "\n"

    def _compile_header(self) -> str:
        return (
            f"<!-- Managed by MineKit {self.version}. "
            "Edits from this heading down are overwritten on update. -->\n"
        )

    def _compile_command_table(self) -> str:
        workflows = self.catalog.group(WORKFLOW_GROUP)
        lines = [
            "## CRITICAL: Command Recognition",
            "When the user types one of the commands below, it is a Mine WORKFLOW COMMAND, "
            "not a file path. Read the matching workflow file and follow its instructions.",
            "",
            "## Command Mapping",
            "| Command | Workflow File | Description |",
            "|---------|---------------|-------------|",
        ]
        if workflows is not None:
            for descriptor in workflows.resources:
                if not descriptor.command:
                    continue
                path = self.target.destination(workflows, descriptor)
                lines.append(
                    f"| `{descriptor.command}` | {path} | {descriptor.summary or ''} |",
                )
        return "\n".join(lines) + "\n"

    def _compile_resource_locations(self) -> str:
        lines = ["## Resource Locations"]
        for group in self.catalog.groups():
            if group.name == WORKFLOW_GROUP:
                continue
            lines.append(f"- {_title(group)}: {self._dir(group)}")
        lines.append(f"- Preferences: {self.target.preferences_file}")
        return "\n".join(lines) + "\n"

    def _compile_execution_guide(self) -> str:
        return """\
## How to Execute
1. When the user types one of the commands above, READ the matching workflow file.
2. Carry out EVERY phase of the workflow in order.
3. Do not skip steps on your own initiative.
4. Finish with the NEXT STEPS menu described in the workflow.
"""

    def _compile_update_check(self) -> str:
        return (
            "## Update Check\n"
            f"- Installed Mine version: {self.version}\n"
            f"- Version is recorded at: {self.target.version_file}\n"
            "- To check for and install updates, the user types: /mine-update\n"
            "- About once a week, remind frequent users to check for updates.\n"
        )

    def _dir(self, group: ResourceGroup) -> str:
        return str(self.target.group_root(group)) + "/"


def _title(group: ResourceGroup) -> str:
    return group.name.replace("_", " ").capitalize()


def render_managed_block(
    catalog: ResourceCatalog,
    target: InstallTarget,
    version: str,
    marker: str = MARKER,
) -> str:
    """Compile the managed block in one call."""
    return ManagedBlockCompiler(catalog, target, version, marker).compile()
