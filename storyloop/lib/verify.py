"""
Verification collaborator.

An attempt is opaque to the coordinator: it only needs pass/fail plus an
error text for stuck detection. CommandVerifier implements it with shell
commands from verify.yaml:

    attempt:
      primary: "claude -p --dangerously-skip-permissions"
      alternative: "claude -p --model opus {prompt}"
    steps:
      - name: typecheck
        command: "npm run typecheck"
      - name: test
        command: "npm test -- {story_id}"

Templates support {story_id}, {prd_id}, {title}, {approach} and, for
attempt commands, {prompt}. Without {prompt} the prompt goes via stdin.
The attempt command is optional; with none configured only the steps run
(the code is changed by something outside the loop) and no alternative
approach is available.
"""

import logging
import re
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from storyloop.lib.errors import AttemptCancelled, ConfigError
from storyloop.prd.models import Story

logger = logging.getLogger(__name__)

PRIMARY = "primary"
ALTERNATIVE = "alternative"
APPROACHES = (PRIMARY, ALTERNATIVE)

MAX_ERROR_OUTPUT = 1000
PROMPT_PLACEHOLDER = "__PROMPT_PLACEHOLDER__"


@dataclass
class VerifyResult:
    """Outcome of one attempt as seen by the coordinator."""
    passed: bool
    signature: str = ""            # raw error text, normalized by the caller
    output: str = ""
    stages: dict[str, str] = field(default_factory=dict)   # step name -> passed/failed/skipped


class Verifier:
    """Interface for the verification collaborator."""

    def run(self, story: Story, approach: str = PRIMARY) -> VerifyResult:
        """Run one attempt. Raise AttemptCancelled on operator abort."""
        raise NotImplementedError

    def has_alternative(self, story: Story) -> bool:
        return False


@dataclass
class VerifyStep:
    name: str
    command: str


@dataclass
class VerifyConfig:
    """Commands from verify.yaml."""
    steps: list[VerifyStep] = field(default_factory=list)
    attempt: dict[str, str] = field(default_factory=dict)   # approach -> command template
    timeout: int = 600


def load_verify_config(path: Path, timeout: int = 600) -> VerifyConfig:
    """Load verify.yaml.

    Raises:
        ConfigError: file missing, unparsable, or malformed
    """
    if not path.exists():
        raise ConfigError(f"Verify config not found: {path}")

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse {path}: {e}") from None

    if not isinstance(data, dict):
        raise ConfigError(f"{path}: expected a mapping at top level")

    steps = []
    for i, raw in enumerate(data.get("steps") or []):
        if not isinstance(raw, dict) or "command" not in raw:
            raise ConfigError(f"{path}: step {i + 1} needs a 'command'")
        steps.append(VerifyStep(name=str(raw.get("name", f"step{i + 1}")), command=str(raw["command"])))

    attempt = data.get("attempt") or {}
    if isinstance(attempt, str):
        attempt = {PRIMARY: attempt}
    unknown = set(attempt) - set(APPROACHES)
    if unknown:
        raise ConfigError(f"{path}: unknown attempt approach(es): {', '.join(sorted(unknown))}")

    if not steps and not attempt:
        raise ConfigError(f"{path}: nothing to run (no steps, no attempt command)")

    return VerifyConfig(
        steps=steps,
        attempt={k: str(v) for k, v in attempt.items()},
        timeout=int(data.get("timeout", timeout)),
    )


def build_prompt(story: Story, approach: str) -> str:
    """Prompt handed to the attempt command."""
    lines = [
        f"# Story {story.id}: {story.title}",
        "",
    ]
    if story.description:
        lines += [story.description, ""]
    if story.acceptance_criteria:
        lines.append("## Acceptance criteria")
        lines += [f"- {c}" for c in story.acceptance_criteria]
        lines.append("")
    if approach == ALTERNATIVE:
        lines += [
            "## Note",
            "Previous attempts kept failing the same way. Take a different approach",
            "instead of repeating the last fix.",
            "",
        ]
    return "\n".join(lines)


def render_command(template: str, context: dict[str, str]) -> list[str]:
    """Substitute {vars} and split into argv. {prompt} stays one argument."""
    prompt = context.get("prompt")
    if prompt is not None:
        template = template.replace("{prompt}", PROMPT_PLACEHOLDER)

    for key, value in context.items():
        if key != "prompt":
            template = template.replace(f"{{{key}}}", shlex.quote(value))

    remaining = re.findall(r'\{(\w+)\}', template)
    if remaining:
        logger.error(f"Unsubstituted variables {remaining} in command: {template}")

    cmd = shlex.split(template)
    if prompt is not None:
        cmd = [prompt if arg == PROMPT_PLACEHOLDER else arg for arg in cmd]
    return cmd


def _tail(text: str) -> str:
    return text[-MAX_ERROR_OUTPUT:]


class CommandVerifier(Verifier):
    """Run the attempt command (if any) then each verify step in order."""

    def __init__(self, config: VerifyConfig, cwd: Path):
        self.config = config
        self.cwd = Path(cwd)

    def has_alternative(self, story: Story) -> bool:
        return ALTERNATIVE in self.config.attempt

    def _context(self, story: Story, approach: str) -> dict[str, str]:
        return {
            "story_id": story.id,
            "prd_id": story.prd_id,
            "title": story.title,
            "approach": approach,
        }

    def _exec(self, cmd: list[str], stdin: Optional[str]) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                cmd,
                cwd=self.cwd,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=self.config.timeout,
            )
        except KeyboardInterrupt:
            raise AttemptCancelled(f"Interrupted while running: {cmd[0]}") from None

    def run(self, story: Story, approach: str = PRIMARY) -> VerifyResult:
        if approach not in APPROACHES:
            raise ValueError(f"Unknown approach: {approach}")

        context = self._context(story, approach)
        outputs = []
        stages: dict[str, str] = {}

        template = self.config.attempt.get(approach)
        if template:
            prompt = build_prompt(story, approach)
            via_stdin = "{prompt}" not in template
            cmd = render_command(template, {**context, "prompt": prompt})
            logger.info(f"[VERIFY] {story.id}: running {approach} attempt ({cmd[0]})")
            try:
                result = self._exec(cmd, prompt if via_stdin else None)
            except subprocess.TimeoutExpired:
                return VerifyResult(passed=False, signature=f"timeout: {approach} attempt")
            except OSError as e:
                return VerifyResult(passed=False, signature=f"attempt command failed: {e}")
            outputs.append(result.stdout)
            if result.returncode != 0:
                return VerifyResult(
                    passed=False,
                    signature=_tail(result.stderr or result.stdout),
                    output="\n".join(outputs),
                )

        for i, step in enumerate(self.config.steps):
            cmd = render_command(step.command, context)
            logger.info(f"[VERIFY] {story.id}: {step.name}")
            try:
                result = self._exec(cmd, None)
            except subprocess.TimeoutExpired:
                stages[step.name] = "failed"
                self._skip_rest(stages, i)
                return VerifyResult(
                    passed=False,
                    signature=f"timeout: {step.name}",
                    output="\n".join(outputs),
                    stages=stages,
                )
            except OSError as e:
                stages[step.name] = "failed"
                self._skip_rest(stages, i)
                return VerifyResult(
                    passed=False,
                    signature=f"{step.name}: {e}",
                    output="\n".join(outputs),
                    stages=stages,
                )

            outputs.append(result.stdout)
            if result.returncode != 0:
                stages[step.name] = "failed"
                self._skip_rest(stages, i)
                return VerifyResult(
                    passed=False,
                    signature=f"{step.name}: {_tail(result.stderr or result.stdout)}",
                    output="\n".join(outputs),
                    stages=stages,
                )
            stages[step.name] = "passed"

        return VerifyResult(passed=True, output="\n".join(outputs), stages=stages)

    def _skip_rest(self, stages: dict[str, str], failed_index: int) -> None:
        for step in self.config.steps[failed_index + 1:]:
            stages[step.name] = "skipped"
