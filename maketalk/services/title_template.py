"""HTML template for title cards.

Sizes are tuned for the default 3456x2234 canvas; other canvas sizes keep
the layout proportions because containers are percentage based.
"""

import html
from string import Template

ACCENT_COLORS = ("#61BB46", "#FDB827", "#F5821F", "#E03A3E", "#963D97", "#009DDC")

TITLE_CARD_TEMPLATE = Template("""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<style>
@import url('https://fonts.googleapis.com/css2?family=Inter:wght@300;400;600&display=swap');

* { margin: 0; padding: 0; box-sizing: border-box; }

body {
    width: ${width}px;
    height: ${height}px;
    background: #faf8f3;
    font-family: 'Inter', -apple-system, BlinkMacSystemFont, sans-serif;
    position: relative;
    overflow: hidden;
    display: flex;
    align-items: center;
    justify-content: center;
}

.grid {
    position: absolute;
    inset: 0;
    background-image:
        linear-gradient(0deg, rgba(0,0,0,0.02) 1px, transparent 1px),
        linear-gradient(90deg, rgba(0,0,0,0.02) 1px, transparent 1px);
    background-size: 40px 40px;
}

.container {
    width: 75%;
    height: 65%;
    position: relative;
    display: flex;
    flex-direction: column;
    align-items: center;
    justify-content: center;
    text-align: center;
}

.section-number {
    font-size: 24px;
    font-weight: 300;
    letter-spacing: 16px;
    color: #999;
    margin-bottom: 120px;
    text-transform: uppercase;
}

.title {
    font-size: 200px;
    font-weight: 600;
    letter-spacing: -8px;
    line-height: 0.85;
    margin-bottom: 80px;
    color: #1a1a1a;
    text-transform: uppercase;
}

.description {
    font-size: 36px;
    font-weight: 300;
    letter-spacing: 4px;
    color: #666;
    margin-bottom: 120px;
    text-transform: uppercase;
}

.dots {
    position: absolute;
    left: 12.5%;
    top: 50%;
    transform: translateY(-50%);
    display: flex;
    flex-direction: column;
    gap: 30px;
}

.dot { width: 16px; height: 16px; border-radius: 50%; opacity: 0.7; }

.color-bar {
    position: absolute;
    top: 48%;
    right: 12.5%;
    width: 140px;
    height: 5px;
    display: flex;
    gap: 2px;
}

.segment { flex: 1; height: 100%; }

.corner { position: absolute; width: 60px; height: 60px; }
.corner::before, .corner::after { content: ''; position: absolute; background: #ddd; }
.corner.top-left { top: 15%; left: 12.5%; }
.corner.top-left::before { width: 60px; height: 1px; }
.corner.top-left::after { width: 1px; height: 60px; }
.corner.bottom-right { bottom: 15%; right: 12.5%; }
.corner.bottom-right::before { width: 60px; height: 1px; right: 0; bottom: 0; }
.corner.bottom-right::after { width: 1px; height: 60px; right: 0; bottom: 0; }
</style>
</head>
<body>
    <div class="grid"></div>
    <div class="corner top-left"></div>
    <div class="corner bottom-right"></div>
    <div class="dots">
${dots}
    </div>
    <div class="color-bar">
${segments}
    </div>
    <div class="container">
        <div class="section-number">SECTION ${number}</div>
        <div class="title">${title}</div>
        <div class="description">${description}</div>
    </div>
</body>
</html>
""")


def render_title_card_html(number: str, title: str, description: str, width: int, height: int) -> str:
    """Fill the template; text values are HTML-escaped."""
    dots = "\n".join(
        f'        <div class="dot" style="background: {color}"></div>' for color in ACCENT_COLORS
    )
    segments = "\n".join(
        f'        <div class="segment" style="background: {color}"></div>' for color in ACCENT_COLORS
    )
    return TITLE_CARD_TEMPLATE.substitute(
        width=width,
        height=height,
        dots=dots,
        segments=segments,
        number=html.escape(number),
        title=html.escape(title),
        description=html.escape(description),
    )
