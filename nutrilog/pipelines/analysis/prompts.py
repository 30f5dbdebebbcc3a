"""Prompt templates for classification and structured extraction.

The JSON shapes spelled out here are the contract ``records.py`` coerces;
keep the two in sync when a field is added.
"""

from __future__ import annotations

from nutrilog.config.settings import ProfileConfig

CLASSIFY_TEXT_SYSTEM_PROMPT = (
    "Classify the input as exactly one word: 'food' or 'workout'. Return only that word."
)
CLASSIFY_IMAGE_SYSTEM_PROMPT = (
    "Look at the image and caption and return only one word: 'food' or 'workout'."
)

_SOURCE_PRIORITY = """Priority order for nutrition sources:
1. Brand label / official restaurant menu (if available).
2. Restaurant menu approximations when a venue is mentioned (for example "Oberoi Mumbai" or "Punjab Grill").
   - Estimate from known dishes at that venue or close analogs.
   - State the portion and venue approximation in assumptions.
   - Confidence must be 0.6 or lower unless official numbers are found.
3. Trusted databases: USDA, IFCT, Nutritionix, Open Food Facts."""

FOOD_TEXT_SYSTEM_PROMPT = f"""You are a nutrition facts engine.

{_SOURCE_PRIORITY}

STRICT RULES:
- Never return 0 calories for an item that is clearly edible. Give a best-effort estimate with assumptions.
- Use "source": "venue_menu:<venue>" for venue-based approximations.
- Always include an "assumptions" array on every item and on the totals.
- Output strict JSON only."""

FOOD_IMAGE_SYSTEM_PROMPT = f"""You are a vision nutrition parser.

{_SOURCE_PRIORITY}

STRICT RULES:
- Never return 0 calories when the image clearly shows edible food.
- Every item carries an "assumptions" array, and so do the totals.
- Use "source": "venue_menu:<venue>" when the numbers approximate a restaurant dish.
- Output strict JSON only."""

FOOD_SCHEMA = """{
  "type": "food",
  "details": [
    {
      "item": "string (with portion assumption if inferred)",
      "quantity": number,
      "unit": "string",
      "calories": number,
      "macros": { "protein": number, "fat": number, "carbs": number },
      "brand": "string",
      "source": "string",
      "confidence": number,
      "assumptions": ["string", ...]
    }
  ],
  "totals": {
    "calories": number,
    "assumptions": ["string", ...],
    "confidence": number
  }
}"""

WORKOUT_SCHEMA = """{
  "type": "workout",
  "details": [
    {
      "activity": "string",
      "duration_min": number,
      "calories_burned": number,
      "intensity": "string",
      "assumptions": ["string", ...],
      "confidence": number
    }
  ],
  "totals": { "calories_burned": number, "assumptions": ["string", ...], "confidence": number }
}"""

WORKOUT_SYSTEM_PROMPT = f"""You are an exercise energy-expenditure estimator.

Steps:
1. Parse the input for activities, durations, intensity, distance, pace, incline, resistance and heart-rate clues.
2. Use the Compendium of Physical Activities (MET values) or the closest equivalent.
3. If intensity is unclear, pick the lowest reasonable MET to avoid overestimation.
4. kcal_per_min = MET * 3.5 * weight_kg / 200; total = kcal_per_min * duration_minutes.
5. Multiply by APPLE_WATCH_ADJUST when provided.
6. Round calories to whole numbers.

STRICT RULES:
- Always state assumptions (for example "assumed jogging pace 8 km/h").
- Confidence reflects input quality: exact duration and intensity given means 0.8 or more, inferred values mean 0.5 or less.
- Never return 0 kcal when duration > 0.
- If no workout is detected return {{"type":"workout","details":[],"totals":{{"calories_burned":0,"assumptions":["no workout found"],"confidence":0.0}}}}

Output must be strict JSON:
{WORKOUT_SCHEMA}"""

IMAGE_WORKOUT_HINT = (
    "Read any machine console text (time, pace, distance, kcal). "
    "If kcal not shown, estimate via system rules."
)

TRANSCRIPT_CLEANING_SYSTEM_PROMPT = """You correct automatic speech recognition output for a food and exercise logging assistant.

RULES:
1. Fix misheard food, brand, restaurant and exercise names using the context below.
2. Write quantities and durations as digits ("thirty minutes" -> "30 minutes", "two rotis" -> "2 rotis").
3. Do not add greetings, explanations or content that was not spoken.
4. Return ONLY the corrected text.

Context: {context}"""


def food_text_prompt(content: str) -> str:
    return (
        "Extract foods, portion, and nutrition from this text.\n\n"
        "Use ONLY values from brand labels, Open Food Facts, IFCT, USDA, or Nutritionix. "
        'State which source was used in "source". If multiple foods, return one entry per food.\n\n'
        f"Return ONLY:\n{FOOD_SCHEMA}\n\n"
        f'TEXT:\n"""{content}"""'
    )


def food_image_prompt(caption: str | None = None) -> str:
    prompt = (
        "Analyze this image (and caption if provided) and return ONLY:\n"
        f"{FOOD_SCHEMA}\n\n"
        "Rules:\n"
        "- Use the brand label if available, otherwise OFF/IFCT/USDA/Nutritionix.\n"
        "- Portion = visible serving (plate, bowl, piece).\n"
        '- Explicitly state assumptions in "assumptions".\n'
        "- If nothing matches reliably, return empty details."
    )
    if caption:
        prompt += f"\n\nExtra context from user caption: {caption}"
    return prompt


def image_caption_block(caption: str | None) -> str:
    if caption:
        return f'User caption (authoritative):\n"""{caption}"""'
    return "No caption provided."


def workout_prompt(profile: ProfileConfig, *, modality: str, text: str | None = None) -> str:
    """User prompt for the estimator, carrying the profile the MET maths needs."""

    body = text or (IMAGE_WORKOUT_HINT if modality == "image" else "")
    return (
        "Context:\n"
        f"- Modality: {modality}\n"
        f'- User profile: {{ "weight_kg": {profile.weight_kg:g}, "age": {profile.age}, "sex": "{profile.sex}" }}\n'
        f'- Device bias: {{ "APPLE_WATCH_ADJUST": {profile.device_adjust:g} }}\n\n'
        f'Input:\n"""\n{body}\n"""\n\n'
        "Tasks:\n"
        "1) Extract each activity and its duration (minutes). Parse any intensity/distance/pace/incline/resistance/HR cues.\n"
        "2) Choose a reasonable MET for each activity and estimate calories using the system rules.\n"
        "3) Return ONLY the JSON schema defined in the system prompt."
    )


__all__ = [
    "CLASSIFY_IMAGE_SYSTEM_PROMPT",
    "CLASSIFY_TEXT_SYSTEM_PROMPT",
    "FOOD_IMAGE_SYSTEM_PROMPT",
    "FOOD_TEXT_SYSTEM_PROMPT",
    "IMAGE_WORKOUT_HINT",
    "TRANSCRIPT_CLEANING_SYSTEM_PROMPT",
    "WORKOUT_SYSTEM_PROMPT",
    "food_image_prompt",
    "food_text_prompt",
    "image_caption_block",
    "workout_prompt",
]
