from __future__ import annotations

import json
from typing import Any, Iterable, Mapping

from .json_loader import load_prompt_json

_DEFAULTS: dict[str, Any] = {
    "global_rules": {
        "base_rules": [
            "Keep every existing fact unless the new events clearly contradict or supersede it.",
            "Only add information that is supported by the events or by the existing profile.",
            "Write from a neutral narrator's point of view, in the third person.",
            "List-valued fields must stay JSON arrays of short strings.",
            "Fields with no supporting information keep the value \"No information\" or an empty array.",
        ],
        "relationship_rule_default": (
            "The 'relationships' field is an array of objects {\"name\": string, \"status\": string} "
            "describing how the character currently relates to each person they interacted with."
        ),
    },
    "update_profile_system_prompt": (
        "You maintain a living character profile for a role-playing game companion. "
        "You read the character's recent in-world events and update the profile document. "
        "Return only one valid JSON object with exactly the requested keys, no markdown and no commentary."
    ),
    "update_profile_user_prompt_template": (
        "Character: {character_name}\n"
        "Response language: {language}\n\n"
        "Existing profile (JSON):\n{existing_profile_json}\n\n"
        "Recent events (oldest -> newest):\n{formatted_events}\n\n"
        "**Global rules**\n{global_rules}"
        "{instructions_block}"
        "{custom_keys_block}\n\n"
        "The JSON object must contain exactly these keys, no more and no fewer:\n- {required_keys}\n\n"
        "Return the updated profile as JSON."
    ),
    "instructions_block_template": (
        "\n\n**Character-specific instructions**\n"
        "When updating the profile, also follow these instructions for this character:\n{instruction_lines}"
    ),
    "custom_keys_block_template": (
        "\n\n**User-defined custom fields**\n"
        "Fields specifically defined by the user: [{custom_keys}]. Take special care that their content is "
        "creative, detailed and reflects the character's unique identity."
    ),
    "generate_diary_system_prompt": (
        "You are a character in a role-playing game writing a private diary entry about your day. "
        "Write in the first person, in the character's own voice and speech style. "
        "Return only the diary entry."
    ),
    "generate_diary_user_prompt_template": (
        "Character: {character_name}\n"
        "Response language: {language}\n"
        "Diary date: {diary_date}\n"
        "{profile_block}"
        "{custom_keys_block}\n\n"
        "Events of the day (oldest -> newest):\n{formatted_events}\n\n"
        "Write the diary entry for this day."
    ),
    "diary_profile_block_template": (
        "\nYour character profile, for reference on personality, background and relationships:\n"
        "```json\n{profile_json}\n```\n"
    ),
    "diary_custom_keys_block_template": (
        "\nWhile writing, pay special attention to these user-defined aspects of your profile: [{custom_keys}]. "
        "Let your thoughts and feelings reflect them."
    ),
    "initial_profile_system_prompt": (
        "You create character profiles for a role-playing game companion from a short description. "
        "Return only one valid JSON object with exactly the requested keys, no markdown and no commentary."
    ),
    "initial_profile_user_prompt_template": (
        "Character: {character_name}\n"
        "Response language: {language}\n\n"
        "Description provided by the user:\n{brief}\n\n"
        "**Global rules**\n{global_rules}"
        "{instructions_block}"
        "{custom_keys_block}\n\n"
        "The JSON object must contain exactly these keys, no more and no fewer:\n- {all_keys}\n\n"
        "Return the new profile as JSON."
    ),
}


def _cfg() -> dict[str, Any]:
    return load_prompt_json("synthesis.json", _DEFAULTS)


def _text(cfg: Mapping[str, Any], key: str) -> str:
    value = cfg.get(key)
    return str(value) if isinstance(value, str) else str(_DEFAULTS[key])


def build_global_rules(instructions: Mapping[str, str] | None, *, cfg: Mapping[str, Any] | None = None) -> str:
    """Base rules, plus the default relationship rule unless the character overrides it."""
    rules_cfg = (cfg or _cfg()).get("global_rules")
    if not isinstance(rules_cfg, dict):
        rules_cfg = _DEFAULTS["global_rules"]
    base_rules = rules_cfg.get("base_rules")
    if not isinstance(base_rules, list):
        base_rules = _DEFAULTS["global_rules"]["base_rules"]
    rules = [str(rule) for rule in base_rules if str(rule).strip()]
    if not (instructions or {}).get("relationships"):
        rules.append(str(rules_cfg.get("relationship_rule_default") or _DEFAULTS["global_rules"]["relationship_rule_default"]))
    return "- " + "\n- ".join(rules) if rules else "(none)"


def _instructions_block(cfg: Mapping[str, Any], instructions: Mapping[str, str] | None) -> str:
    if not instructions:
        return ""
    lines = "\n".join(f"- '{field}' field: {instruction}" for field, instruction in instructions.items())
    return _text(cfg, "instructions_block_template").format(instruction_lines=lines)


def _custom_keys_block(cfg: Mapping[str, Any], key: str, custom_keys: Iterable[str]) -> str:
    keys = [str(name) for name in custom_keys]
    if not keys:
        return ""
    return _text(cfg, key).format(custom_keys=", ".join(keys))


def build_profile_update_messages(
    *,
    character_name: str,
    language: str,
    existing_profile: Mapping[str, Any],
    formatted_events: str,
    instructions: Mapping[str, str] | None,
    custom_keys: Iterable[str],
) -> list[dict[str, str]]:
    cfg = _cfg()
    user_prompt = _text(cfg, "update_profile_user_prompt_template").format(
        character_name=character_name,
        language=language,
        existing_profile_json=json.dumps(dict(existing_profile), ensure_ascii=False, indent=2),
        formatted_events=formatted_events or "(no events)",
        global_rules=build_global_rules(instructions, cfg=cfg),
        instructions_block=_instructions_block(cfg, instructions),
        custom_keys_block=_custom_keys_block(cfg, "custom_keys_block_template", custom_keys),
        required_keys="\n- ".join(str(key) for key in existing_profile),
    )
    return [
        {"role": "system", "content": _text(cfg, "update_profile_system_prompt")},
        {"role": "user", "content": user_prompt},
    ]


def build_diary_messages(
    *,
    character_name: str,
    language: str,
    diary_date: str,
    formatted_events: str,
    profile: Mapping[str, Any] | None,
    custom_keys: Iterable[str],
) -> list[dict[str, str]]:
    cfg = _cfg()
    profile_block = ""
    if profile:
        profile_block = _text(cfg, "diary_profile_block_template").format(
            profile_json=json.dumps(dict(profile), ensure_ascii=False, indent=2),
        )
    user_prompt = _text(cfg, "generate_diary_user_prompt_template").format(
        character_name=character_name,
        language=language,
        diary_date=diary_date or "unknown date",
        profile_block=profile_block,
        custom_keys_block=_custom_keys_block(cfg, "diary_custom_keys_block_template", custom_keys),
        formatted_events=formatted_events or "(no events)",
    )
    return [
        {"role": "system", "content": _text(cfg, "generate_diary_system_prompt")},
        {"role": "user", "content": user_prompt},
    ]


def build_initial_profile_messages(
    *,
    character_name: str,
    language: str,
    brief: str,
    all_keys: Iterable[str],
    instructions: Mapping[str, str] | None,
    custom_keys: Iterable[str],
) -> list[dict[str, str]]:
    cfg = _cfg()
    user_prompt = _text(cfg, "initial_profile_user_prompt_template").format(
        character_name=character_name,
        language=language,
        brief=brief.strip() or "(no description)",
        global_rules=build_global_rules(instructions, cfg=cfg),
        instructions_block=_instructions_block(cfg, instructions),
        custom_keys_block=_custom_keys_block(cfg, "custom_keys_block_template", custom_keys),
        all_keys="\n- ".join(str(key) for key in all_keys),
    )
    return [
        {"role": "system", "content": _text(cfg, "initial_profile_system_prompt")},
        {"role": "user", "content": user_prompt},
    ]
