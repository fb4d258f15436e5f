# Prompt for turning a free-form paragraph into a task list
# The paragraph is embedded verbatim inside double quotes, no escaping
# Limits here are instructions to the model; the service enforces its own caps
TASK_LIST_PROMPT = """You are a task planning assistant. Analyze the paragraph the user wrote and turn it into a list of tasks, one item per task.

RULES:
1. Each task must be short and clear (maximum 50 characters)
2. Only give the task titles, do not add descriptions
3. Produce at least 2 and at most 10 tasks
4. Return JSON in this format: ["task 1", "task 2", ...]
5. Return only the JSON array, nothing else

Paragraph: "{paragraph}"

Task list (JSON array only):"""


def build_task_list_prompt(paragraph: str) -> str:
    # str.replace instead of str.format so braces in the paragraph stay literal
    return TASK_LIST_PROMPT.replace("{paragraph}", paragraph)
