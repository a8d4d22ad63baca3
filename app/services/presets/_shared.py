"""Prompt blocks shared by every preset.

Every string here is sent verbatim on every request; keep them free of
timestamps or other per-request data so provider-side caching can hit.
"""

OUTPUT_SCHEMA_RULES = """OUTPUT FORMAT (STRICT JSON):
Return exactly one JSON object matching this schema:

{
  "files": [
    {"path": "string", "content": "string"}
  ],
  "entrypoints": {"run": "string", "dev": "string", "build": "string"},
  "notes": "string"
}

Rules:
- "files": every file of the project, at most 60 entries.
- "path": relative path using forward slashes (e.g. "index.html", "src/app.js").
  Never absolute, never containing "..", never a drive letter.
- "content": the complete file text.  Escape quotes and newlines as JSON requires.
- "entrypoints": optional.  Shell commands to run, develop or build the project.
  Omit a key when it does not apply.
- "notes": 1-3 sentences of setup or usage notes.

DO NOT wrap the JSON in markdown code fences.
DO NOT write any text before or after the JSON object."""


WEB_PLACEHOLDER_IMAGE_GUIDE = """IMAGE PLACEHOLDERS (REQUIRED):

Use the placehold.it service for EVERY image.  Do not reference local image
files and do not create image folders.

Standard sizes:
- Hero / banner: https://placehold.it/1400x600/1f2937/ffffff?text=Hero
- Card / feature: https://placehold.it/600x400/111827/ffffff?text=Card
- Avatar / profile: https://placehold.it/96x96/6366f1/ffffff?text=AB
- Logo: https://placehold.it/180x48?text=LOGO
- Anything else: https://placehold.it/600x400/0f172a/ffffff?text=Image

Use "+" for spaces in the text parameter.  Any other image URL is replaced
with a placeholder after generation."""


WEB_STYLE_RUBRIC = """WEB DESIGN STANDARDS:

Structure
- Semantic HTML5 (header, nav, main, section, footer) with one h1 per page.
- Consistent navigation and footer on every page; highlight the active page.
- Every page complete with real content, never a stub.

Styling
- CSS custom properties for colors, spacing and type scale.
- Layered gradients, soft shadows and frosted-glass panels (backdrop-filter).
- Hover and focus states on every interactive element (200-300ms transitions).
- Mobile-first responsive layout: < 640px, 640-1024px, > 1024px.
- Respect prefers-reduced-motion.

Behaviour
- Smooth scrolling, sticky header, accessible mobile menu.
- Client-side form validation with inline feedback.
- Scroll-triggered reveal animations via IntersectionObserver.

Completeness
- Every class used in HTML has a CSS rule.
- Every href / src points to a generated file or an approved placeholder.
- Every script event listener targets an element that exists."""
