import json
from typing import Any, Dict, List, Optional

from ..core.errors import ModelResponseError
from ..core.log import Logger, aux, default_logger, log_line
from ..core.types import ObserveElement


def build_observe_system_prompt(user_provided_instructions: Optional[str] = None) -> str:
    prompt = (
        "You are helping the user automate the browser by finding elements based on what the "
        "user wants to observe in the page.\n"
        "You will be given:\n"
        "1. an instruction of elements to observe\n"
        "2. a hierarchical accessibility tree showing the semantic structure of the page. "
        "The tree is a hybrid of the DOM and the accessibility tree. Each line starts with the "
        "element id in square brackets, e.g. [0-42].\n"
        "\n"
        "Return an array of elements that match the instruction if they exist, otherwise return "
        "an empty array. Use the element ids exactly as they appear in the tree.\n"
    )
    if user_provided_instructions:
        prompt += (
            "\n"
            "# Custom Instructions Provided by the User\n"
            "Please keep the user's instructions in mind when performing actions. If the user's "
            "instructions are not relevant to the current task, ignore them.\n"
            f"User Instructions:\n{user_provided_instructions}\n"
        )
    return prompt


def build_output_format(return_action: bool) -> str:
    item = '{"elementId": "<id from the tree>", "description": "<what the element is>"'
    if return_action:
        item += (
            ', "method": "<playwright method, e.g. click, fill, type, press, scrollIntoView>"'
            ', "arguments": ["<argument strings for the method, empty if none>"]'
        )
    item += "}"
    return (
        "====================\n"
        "OUTPUT FORMAT (JSON ONLY)\n"
        "====================\n"
        f'{{"elements": [{item}]}}\n'
    )


def build_observe_user_message(instruction: str, dom_elements: str) -> str:
    return f"instruction: {instruction}\nAccessibility Tree: \n{dom_elements}"


def _strip_code_fence(raw_text: str) -> str:
    if "```json" in raw_text:
        return raw_text.split("```json")[1].split("```")[0].strip()
    if "```" in raw_text:
        return raw_text.split("```")[1].split("```")[0].strip()
    return raw_text


def parse_observe_response(raw_text: str, return_action: bool = True) -> List[ObserveElement]:
    """Parse the model's JSON answer into elements, tolerating a bare list or code fences."""
    text = _strip_code_fence(raw_text.strip())
    try:
        parsed = json.loads(text)
    except ValueError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise ModelResponseError(f"Model returned non-JSON observe response: {raw_text[:200]}")
        try:
            parsed = json.loads(text[start: end + 1])
        except ValueError as e:
            raise ModelResponseError(f"Model returned malformed observe response: {raw_text[:200]}") from e

    raw_elements = parsed.get("elements", []) if isinstance(parsed, dict) else parsed
    if not isinstance(raw_elements, list):
        raise ModelResponseError("Observe response 'elements' is not a list")

    elements: List[ObserveElement] = []
    for raw in raw_elements:
        if not isinstance(raw, dict) or raw.get("elementId") is None:
            continue
        element: ObserveElement = {
            "elementId": str(raw["elementId"]),
            "description": str(raw.get("description") or ""),
        }
        if return_action:
            element["method"] = str(raw.get("method") or "")
            element["arguments"] = [str(a) for a in raw.get("arguments") or []]
        elements.append(element)
    return elements


async def observe_inference(
    instruction: str,
    dom_elements: str,
    llm_client,
    request_id: str,
    user_provided_instructions: Optional[str] = None,
    logger: Logger = default_logger,
    return_action: bool = True,
    from_act: bool = False,
) -> Dict[str, Any]:
    """Ask the model which elements of the tree match the instruction."""
    messages = [
        {"role": "system",
         "content": build_observe_system_prompt(user_provided_instructions) + "\n" + build_output_format(return_action)},
        {"role": "user", "content": build_observe_user_message(instruction, dom_elements)},
    ]
    completion = await llm_client.create_chat_completion(messages, request_id)
    elements = parse_observe_response(completion["content"], return_action)

    usage = completion.get("usage") or {}
    logger(log_line("observation", "found elements" if not from_act else "found elements for act", 1,
                    aux(count=len(elements), requestId=request_id)))
    return {
        "elements": elements,
        "prompt_tokens": usage.get("prompt_tokens", 0),
        "completion_tokens": usage.get("completion_tokens", 0),
        "inference_time_ms": completion.get("inference_time_ms", 0),
    }
