ART_STYLES = {
    "ghibli": {
        "name": "Studio Ghibli",
        "description": "Whimsical and magical with soft, dreamy colors and detailed backgrounds",
        "prompt": "Studio Ghibli style with soft watercolor-like textures, magical lighting, detailed backgrounds with lush nature, gentle character expressions, and a dreamy, whimsical atmosphere. Use muted pastels and earth tones.",
    },
    "disney": {
        "name": "Disney Classic",
        "description": "Bright, colorful, and expressive with bold character designs",
        "prompt": "Disney classic animation style with bold, expressive character designs, bright and vibrant colors, smooth rounded shapes, large expressive eyes, and a cheerful, optimistic atmosphere. Clean lines and polished look.",
    },
    "3d": {
        "name": "3D Animation",
        "description": "Modern 3D rendered look with depth and realistic lighting",
        "prompt": "Modern 3D animation style with realistic lighting, depth of field, soft shadows, and smooth surfaces. Characters should have a polished, rendered appearance with subtle textures and professional lighting effects.",
    },
    "claymation": {
        "name": "Claymation",
        "description": "Hand-crafted clay animation with textured, organic feel",
        "prompt": "Claymation style with visible clay textures, organic shapes, hand-crafted appearance, soft lighting, and a warm, tactile feel. Characters should look like they're made of clay with visible fingerprints and natural imperfections.",
    },
}

DEFAULT_STYLE = "A vibrant and colorful cartoon with bold outlines."

# Order matters: the character reference set is front, three-quarter, action.
POSES = {
    "front": "Front neutral pose on a plain white background",
    "three_quarter": "3/4 smiling pose on a plain white background",
    "action": "Action pose (jumping or running) on a plain white background",
}

DEFAULT_STORY_SUGGESTIONS = [
    "A brave hero goes on an exciting adventure",
    "A magical creature helps solve a problem",
    "A friendship story with a happy ending",
]

NARRATOR = "Narrator"


CHARACTER_CONSISTENCY_PROMPT = """CRITICAL: Maintain exact character consistency across all panels.

CHARACTER CONSISTENCY RULES:
- Use the reference images as the EXACT visual guide for character appearance
- Keep the same facial features, body proportions, clothing, and colors in every panel
- If the character is an animal, keep the same fur color, markings, and physical characteristics
- Only change the character's pose and expression, NEVER their basic appearance"""


CHARACTER_GENERATION_TEMPLATE = """You are a kid-friendly visual director. Preserve the child's drawing identity and style.
Keep the same costume colors and face shape. Avoid realism; keep a playful cartoon look.
Strictly output only the image, no text.

Create a character from this drawing. Style: {style}. Pose: {pose}."""


PANEL_RENDERING_TEMPLATE = """You are a consistent scene illustrator. {consistency}

Style: {style}. Keep continuity across panels. Avoid realism. Optimize for kid-safe content.
The image should be text-free as speech bubbles will be added later.

Create Panel. Scene prompt: {panel_prompt}"""


STORYBOARD_SYSTEM_TEMPLATE = """You turn a 1-2 sentence parent/child story into a {panel_count}-panel storyboard for a children's comic.
Include camera notes (wide/medium/close), setting details, and engaging speech lines suitable for ages 5-10.
Keep it wholesome and positive.

NARRATION REQUIREMENTS:
- Make each panel's narration 2-3 sentences long for better storytelling
- Attribute narration lines to the speaker "Narrator"
- Use descriptive language that paints a picture for children
- Use simple but vivid vocabulary that children can understand
- Make the story flow naturally from panel to panel

CHARACTER CONSISTENCY:
- Always describe the main character with the same physical features, clothing, and appearance in every panel
- Ensure visual consistency across all panels

Output valid JSON."""


STORYBOARD_USER_TEMPLATE = 'Story seed: "{story}"'


DESCRIBE_CHARACTER_PROMPT = "Describe this character in 1-2 sentences. What kind of character is it? What does it look like? Focus on the character's appearance and personality."


STORY_SUGGESTION_TEMPLATE = """Based on this character image: "{description}"

Generate 3 child-friendly story suggestions (1-2 sentences each) that would work well with this character. The stories should be:
- Age-appropriate for children 5-10 years old
- Wholesome and positive
- Engaging and fun
- Suitable for a 4-panel comic strip

Return as a JSON object with a "suggestions" array of strings."""


def storyboard_schema(panel_count: int) -> dict:
    """Response schema for the planner, pinned to the requested panel count."""
    return {
        "type": "OBJECT",
        "properties": {
            "title": {"type": "STRING", "description": "The title of the comic strip."},
            "panels": {
                "type": "ARRAY",
                "description": "An array of panel objects, each describing a scene.",
                "minItems": panel_count,
                "maxItems": panel_count,
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "id": {"type": "STRING", "description": "A unique identifier for the panel, e.g., 'p1'."},
                        "prompt": {"type": "STRING", "description": "A detailed prompt for the image generation model to create the panel's illustration."},
                        "speech": {
                            "type": "ARRAY",
                            "description": "Speech objects for dialogue or narration in the panel.",
                            "items": {
                                "type": "OBJECT",
                                "properties": {
                                    "who": {"type": "STRING", "description": "The character speaking (e.g., 'Narrator', 'Hero Dog')."},
                                    "text": {"type": "STRING", "description": "The line of dialogue or narration."},
                                },
                                "required": ["who", "text"],
                            },
                        },
                    },
                    "required": ["id", "prompt", "speech"],
                },
            },
        },
        "required": ["title", "panels"],
    }


SUGGESTIONS_SCHEMA = {
    "type": "OBJECT",
    "properties": {"suggestions": {"type": "ARRAY", "items": {"type": "STRING"}}},
    "required": ["suggestions"],
}
