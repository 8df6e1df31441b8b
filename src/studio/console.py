import shlex

from studio.capabilities import MODEL_DESCRIPTIONS, parse_model
from studio.chat import ChatService
from studio.config import ConfigError
from studio.errors import StudioError
from studio.fences import CODE, extract_code_blocks, split_fences
from studio.models import ChatMessage, ChatSession
from studio.templates import TemplateRegistry, create_from_template

HELP = """Commands:
  /new [template]     start a session (templates: see /templates)
  /list               list sessions
  /select ID          switch session
  /delete ID          delete a session
  /attach PATH        attach a file to the next message
  /detach ID          drop a pending attachment
  /set KEY VALUE      change a setting (model, temperature, top_p, top_k,
                      max_output_tokens, stop, grounding, aspect_ratio,
                      system, title)
  /var NAME [VALUE]   set or clear a {{variable}}
  /vars               show variables and unresolved placeholders
  /code               show code blocks from the last reply
  /models             list models
  /templates          list templates
  /quit               exit"""


def render_message(message: ChatMessage) -> str:
    lines = [f"[{message.role}]"]
    for part in message.parts:
        if part.inline_data is not None:
            size = len(part.inline_data.data) * 3 // 4
            lines.append(f"<{part.inline_data.mime_type}, ~{size} bytes>")
            continue
        for segment in split_fences(part.text or ""):
            if segment.kind == CODE:
                lines.append(f"--- {segment.language or 'code'} ---")
                lines.append(segment.text)
                lines.append("---")
            else:
                lines.append(segment.text.rstrip("\n"))
    if message.video_url:
        lines.append(f"video: {message.video_url}")
    for citation in message.citations or []:
        lines.append(f"  * {citation.title}: {citation.uri}")
    return "\n".join(lines)


def render_session_line(session: ChatSession, active: bool) -> str:
    marker = "*" if active else " "
    return f"{marker} {session.id}  {session.title or 'Untitled Prompt'}  ({session.config.model}, {len(session.messages)} msgs)"


def parse_setting(key: str, value: str) -> dict:
    """Translate a ``/set`` pair into a session update patch."""
    if key == "system":
        return {"system_instruction": value}
    if key == "title":
        return {"title": value}
    if key == "model":
        return {"config": {"model": parse_model(value).value}}
    if key == "stop":
        return {"config": {"stop_sequences": [s for s in value.split(",")]}}
    if key == "grounding":
        return {"config": {"grounding": value.lower() in ("1", "true", "on", "yes")}}
    if key in ("temperature", "top_p"):
        return {"config": {key: float(value)}}
    if key in ("top_k", "max_output_tokens"):
        return {"config": {key: int(value)}}
    if key == "aspect_ratio":
        return {"config": {key: value}}
    raise ValueError(f"Unknown setting: {key}")


class StudioConsole:
    def __init__(self, service: ChatService, templates: TemplateRegistry):
        self.service = service
        self.store = service.store
        self.templates = templates

    def run(self) -> None:
        session = self.store.active
        print(f"Studio console (session: {session.title}, model: {session.config.model})")
        print("Type /help for commands")

        while True:
            try:
                user_input = input("\n> ").strip()
                if not user_input:
                    continue
                if user_input.startswith("/"):
                    if not self.handle_command(user_input[1:]):
                        break
                    continue
                self.send(user_input)
            except KeyboardInterrupt:
                print("\nInterrupted")
                break
            except EOFError:
                break
            except (StudioError, ConfigError, ValueError, OSError) as e:
                print(f"Error: {e}")

    def send(self, text: str) -> None:
        session = self.store.active
        missing = {
            name for name in self.service.placeholders(text) if name not in session.variables
        }
        if missing:
            print(f"Unresolved variables: {', '.join(sorted(missing))} (set with /var)")
        print("Generating...")
        reply = self.service.send(text)
        if reply is not None:
            print(render_message(reply))

    def handle_command(self, line: str) -> bool:
        args = shlex.split(line)
        if not args:
            return True
        name, rest = args[0], args[1:]
        session = self.store.active

        if name in ("quit", "exit", "q"):
            return False
        if name == "help":
            print(HELP)
        elif name == "new":
            template = self.templates.get(rest[0] if rest else "blank")
            if template is None:
                print(f"Unknown template. Available: {', '.join(self.templates.names())}")
            else:
                session = create_from_template(self.store, template)
                print(f"Started {session.id}: {session.title}")
        elif name == "list":
            for s in self.store:
                print(render_session_line(s, s.id == self.store.active_id))
        elif name == "select" and rest:
            if not self.store.select(rest[0]):
                print(f"No session {rest[0]}")
            else:
                for message in self.store.active.messages:
                    print(render_message(message))
        elif name == "delete" and rest:
            if not self.store.delete(rest[0]):
                print(f"No session {rest[0]}")
        elif name == "attach" and rest:
            media = self.service.attach_path(rest[0])
            print(f"Attached {media.name} ({media.mime_type}) as {media.id}")
        elif name == "detach" and rest:
            if not self.service.remove_attachment(rest[0]):
                print(f"No attachment {rest[0]}")
        elif name == "set" and len(rest) >= 2:
            self.store.update(session.id, parse_setting(rest[0], " ".join(rest[1:])))
        elif name == "var" and rest:
            value = " ".join(rest[1:]) if len(rest) > 1 else None
            self.store.update(session.id, variables={rest[0]: value})
        elif name == "vars":
            for key, value in sorted(session.variables.items()):
                print(f"  {key} = {value}")
            missing = self.service.placeholders() - set(session.variables)
            if missing:
                print(f"  unresolved: {', '.join(sorted(missing))}")
        elif name == "code":
            reply = next((m for m in reversed(session.messages) if m.role == "model"), None)
            blocks = extract_code_blocks(reply.text) if reply else []
            if not blocks:
                print("No code blocks in the last reply")
            for i, block in enumerate(blocks, 1):
                print(f"--- [{i}] {block.language or 'code'} ---\n{block.text}")
        elif name == "models":
            for model, (label, description) in MODEL_DESCRIPTIONS.items():
                print(f"  {model.value:48} {label}: {description}")
        elif name == "templates":
            for template_name in self.templates.names():
                print(f"  {template_name:12} {self.templates.get(template_name).title}")
        else:
            print(f"Unknown command: /{name}. Type /help for available commands.")
        return True
