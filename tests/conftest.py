"""Shared SVG fixtures shaped like the upstream renderer's output."""

import pytest

NODE = 'fill="var(--_node-fill)" stroke="var(--_node-stroke)"'
LABEL_BOX = 'fill="var(--bg)" stroke="var(--_inner-stroke)"'


FLOWCHART_SVG = f"""<svg xmlns="http://www.w3.org/2000/svg" width="340" height="320" viewBox="0 0 340 320">
  <defs>
    <marker id="arrowhead" markerWidth="8" markerHeight="6" refX="8" refY="3" orient="auto">
      <polygon points="0 0, 8 3, 0 6" fill="var(--_arrow)"/>
    </marker>
  </defs>
  <rect x="100" y="20" width="120" height="40" rx="0" ry="0" {NODE}/>
  <text x="160" y="44" text-anchor="middle">Start</text>
  <polygon points="160,100 210,140 160,180 110,140" {NODE}/>
  <text x="160" y="144" text-anchor="middle">Decision</text>
  <rect x="20" y="260" width="120" height="40" {NODE}/>
  <text x="80" y="284" text-anchor="middle">Action</text>
  <rect x="180" y="260" width="120" height="40" {NODE}/>
  <text x="240" y="284" text-anchor="middle">End</text>
  <polyline points="160,60 160,100" fill="none" stroke="var(--_line)" marker-end="url(#arrowhead)"/>
  <polyline points="110,140 80,140 80,260" fill="none" stroke="var(--_line)" marker-end="url(#arrowhead)"/>
  <polyline points="210,140 240,140 240,260" fill="none" stroke="var(--_line)" marker-end="url(#arrowhead)"/>
  <rect x="66" y="190" width="28" height="20" {LABEL_BOX}/>
  <text x="80" y="204" text-anchor="middle">Yes</text>
  <rect x="226" y="190" width="28" height="20" {LABEL_BOX}/>
  <text x="240" y="204" text-anchor="middle">No</text>
</svg>"""


GROUP_SVG = f"""<svg xmlns="http://www.w3.org/2000/svg" width="300" height="200">
  <rect x="40" y="40" width="200" height="120" fill="var(--_group-fill)" stroke="var(--_node-stroke)"/>
  <rect x="40" y="40" width="200" height="28" fill="var(--_group-hdr)" stroke="var(--_node-stroke)"/>
  <text x="52" y="58" fill="var(--_text-sec)">Backend</text>
  <rect x="80" y="90" width="120" height="40" {NODE}/>
  <text x="140" y="114" text-anchor="middle">API</text>
</svg>"""


SEQUENCE_SVG = f"""<svg xmlns="http://www.w3.org/2000/svg" width="360" height="320">
  <defs>
    <marker id="seq-arrow" markerWidth="8" markerHeight="6" refX="8" refY="3" orient="auto">
      <polygon points="0 0, 8 3, 0 6"/>
    </marker>
  </defs>
  <rect x="20" y="20" width="100" height="40" {NODE}/>
  <text x="70" y="44" text-anchor="middle">Client</text>
  <rect x="220" y="20" width="100" height="40" {NODE}/>
  <text x="270" y="44" text-anchor="middle">Server</text>
  <line x1="70" y1="60" x2="70" y2="300" stroke="var(--_line)" stroke-dasharray="6 4"/>
  <line x1="270" y1="60" x2="270" y2="300" stroke="var(--_line)" stroke-dasharray="6 4"/>
  <rect x="265" y="120" width="10" height="60" {NODE}/>
  <line x1="70" y1="100" x2="265" y2="100" stroke="var(--_line)" marker-end="url(#seq-arrow)"/>
  <text x="167" y="92" text-anchor="middle">request</text>
</svg>"""


ER_SVG = f"""<svg xmlns="http://www.w3.org/2000/svg" width="400" height="140">
  <rect x="20" y="20" width="120" height="80" {NODE}/>
  <text x="80" y="38" text-anchor="middle">CUSTOMER</text>
  <rect x="28" y="52" width="16" height="10" fill="var(--_key-badge)"/>
  <text x="50" y="60" class="mono">PK id</text>
  <rect x="260" y="20" width="120" height="80" {NODE}/>
  <text x="320" y="38" text-anchor="middle">ORDER</text>
  <text x="290" y="60" class="mono">int total</text>
  <polyline points="140,60 260,60" fill="none" stroke="var(--_line)"/>
  <line x1="150" y1="52" x2="150" y2="68" stroke="var(--_line)"/>
  <line x1="250" y1="60" x2="260" y2="52" stroke="var(--_line)"/>
  <line x1="250" y1="60" x2="260" y2="68" stroke="var(--_line)"/>
</svg>"""


STATE_SVG = f"""<svg xmlns="http://www.w3.org/2000/svg" width="300" height="300">
  <circle cx="100" cy="30" r="8" fill="var(--_text)"/>
  <rect x="40" y="80" width="120" height="40" rx="20" ry="20" {NODE}/>
  <text x="100" y="104" text-anchor="middle">Idle</text>
  <circle cx="100" cy="220" r="10" fill="none" stroke="var(--_text)"/>
  <circle cx="100" cy="220" r="6" fill="var(--_text)"/>
  <polyline points="100,38 100,80" fill="none" stroke="var(--_line)" marker-end="url(#arrowhead)"/>
  <polyline points="100,120 100,210" fill="none" stroke="var(--_line)" marker-end="url(#arrowhead)"/>
</svg>"""


CLASS_SVG = f"""<svg xmlns="http://www.w3.org/2000/svg" width="300" height="200">
  <rect x="20" y="20" width="160" height="100" {NODE}/>
  <text x="100" y="40" text-anchor="middle">Account</text>
  <line x1="20" y1="50" x2="180" y2="50" stroke="var(--_node-stroke)"/>
  <text x="30" y="70" class="mono">+ balance: int</text>
  <text x="30" y="90" class="mono">- owner: str</text>
</svg>"""


@pytest.fixture
def flowchart_svg() -> str:
    return FLOWCHART_SVG


@pytest.fixture
def group_svg() -> str:
    return GROUP_SVG


@pytest.fixture
def sequence_svg() -> str:
    return SEQUENCE_SVG


@pytest.fixture
def er_svg() -> str:
    return ER_SVG


@pytest.fixture
def state_svg() -> str:
    return STATE_SVG


@pytest.fixture
def class_svg() -> str:
    return CLASS_SVG
