from payassist.prompts.system_prompt import SYSTEM_PROMPT_TEMPLATE, build_system_prompt  # noqa: F401
