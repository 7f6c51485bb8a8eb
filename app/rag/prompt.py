"""
Prompt Template Module

Builds the system prompt and the message list sent to the completion provider.

Prompt layout:
- Persona text: static knowledge documents, loaded once per process
- Retrieved context: past similar exchanges (only when retrieval found any)
- Rules footer: how to use the two sections above

Variables in templates:
{context} - Retrieved past exchanges
"""

from typing import Optional, Dict, List, Sequence

from app.core.config import settings
from app.core.logging import get_logger
from app.models.request import ChatMessage, ChatMessageRole
from app.rag.loader import load_knowledge

logger = get_logger(__name__)


class PromptTemplate:
    """Base prompt template"""

    def __init__(self, template: str, description: str = ""):
        """
        Initialize prompt template.

        Args:
            template: Template string with {variable} placeholders
            description: Description of the template
        """
        self.template = template
        self.description = description

    def format(self, **kwargs) -> str:
        """Format template with provided variables"""
        try:
            return self.template.format(**kwargs)
        except KeyError as e:
            logger.warning(f"Missing variable in template: {e}")
            raise


class PromptTemplates:
    """Collection of prompt templates"""

    CONTEXT_SECTION = PromptTemplate(
        template="\n\n---\n\n## 以下是你过去类似场景的聊天记录，请参考这些来保持一致的语气和风格：\n\n{context}",
        description="Labeled section holding retrieved past exchanges"
    )

    RULES_FOOTER = PromptTemplate(
        template="""

## 知识库使用规则
- 上面的信息是你的背景知识和人设，回复时自然融入，不要生硬罗列
- 参考历史聊天记录的语气和风格来回复，但不要复制粘贴原文
- 被问到相关内容时准确回答，不知道的就说不知道
- 保持你的聊天风格，短、碎、快""",
        description="Fixed usage rules appended to every system prompt"
    )


class PromptBuilder:
    """Builder for the system prompt and the provider message list"""

    def __init__(self, persona_text: str):
        """
        Initialize prompt builder.

        Args:
            persona_text: Static persona text; never modified afterwards
        """
        self._persona_text = persona_text

    @property
    def persona_text(self) -> str:
        return self._persona_text

    def build_system_prompt(self, context: Optional[str] = None) -> str:
        """
        Build the system turn text.

        Args:
            context: Retrieved past exchanges, empty or None for no retrieval

        Returns:
            Persona text, optional context section and rules footer
        """
        prompt = self._persona_text
        if context:
            prompt += PromptTemplates.CONTEXT_SECTION.format(context=context)
        prompt += PromptTemplates.RULES_FOOTER.template
        return prompt

    def build_messages(
        self,
        system_prompt: str,
        history: Sequence[ChatMessage],
        message: str,
        window: int = settings.HISTORY_WINDOW
    ) -> List[Dict[str, str]]:
        """
        Build the provider message list.

        Args:
            system_prompt: Assembled system turn text
            history: Previous turns, oldest first
            message: Current user message
            window: Number of most recent history turns to keep

        Returns:
            System turn, trailing history window and the user turn
        """
        messages = [{"role": ChatMessageRole.SYSTEM.value, "content": system_prompt}]
        recent = list(history)[-window:] if window > 0 else []
        messages.extend(turn.to_provider() for turn in recent)
        messages.append({"role": ChatMessageRole.USER.value, "content": message})

        logger.debug(f"Built message list: {len(recent)} history turns")
        return messages


# Global prompt builder
_prompt_builder = None


def get_prompt_builder() -> PromptBuilder:
    """Get or create prompt builder instance (persona is read once)"""
    global _prompt_builder
    if _prompt_builder is None:
        _prompt_builder = PromptBuilder(load_knowledge())
    return _prompt_builder
