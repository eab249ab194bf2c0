"""JavaScript expressions evaluated in the page's main world by the native strategy.

User-supplied strings are embedded with ``json.dumps`` so they always arrive as
JavaScript string literals.
"""

from __future__ import annotations

import json
from typing import Any

_FIND_ELEMENT = """\
const find = (selector) => {
    if (selector.startsWith('//') || selector.startsWith('(//')) {
      return document.evaluate(
        selector, document, null, XPathResult.FIRST_ORDERED_NODE_TYPE, null
      ).singleNodeValue;
    }
    return document.querySelector(selector);
  };"""


def evaluate_expression(script: str) -> str:
    """Wrap *script* in a strict-mode IIFE around ``eval``."""
    return f"""(function() {{
  'use strict';
  try {{
    return eval({json.dumps(script)});
  }} catch(e) {{
    throw e;
  }}
}})()"""


def element_center(selector: str) -> str:
    """Scroll the element into view and return its center point, or null."""
    return f"""(function() {{
  {_FIND_ELEMENT}
  const el = find({json.dumps(selector)});
  if (!el) return null;
  el.scrollIntoView({{ block: 'center', behavior: 'instant' }});
  const rect = el.getBoundingClientRect();
  return {{ x: rect.x + rect.width / 2, y: rect.y + rect.height / 2 }};
}})()"""


def focus_element(selector: str, clear: bool) -> str:
    """Focus the element, optionally emptying it.

    Value-bearing fields are reset through ``value``; contenteditable fields
    through ``innerHTML``.  No events are dispatched here; see commit_input.
    """
    return f"""(function() {{
  {_FIND_ELEMENT}
  const selector = {json.dumps(selector)};
  const el = find(selector);
  if (!el) throw new Error('Element not found: ' + selector);
  el.scrollIntoView({{ block: 'center', behavior: 'instant' }});
  el.focus();
  if ({json.dumps(clear)}) {{
    if (el.isContentEditable || el.contentEditable === 'true') {{
      el.innerHTML = '';
    }} else if ('value' in el) {{
      el.value = '';
    }}
  }}
  return true;
}})()"""


def commit_input(selector: str, fire_input: bool) -> str:
    """Dispatch ``change`` once after native text insertion.

    ``Input.insertText`` already fires the browser's own ``input`` event, so a
    synthetic one is only added when nothing was inserted.
    """
    return f"""(function() {{
  {_FIND_ELEMENT}
  const el = find({json.dumps(selector)});
  if (!el) return false;
  if ({json.dumps(fire_input)}) el.dispatchEvent(new Event('input', {{ bubbles: true }}));
  el.dispatchEvent(new Event('change', {{ bubbles: true }}));
  return true;
}})()"""


def scroll_into_view(selector: str) -> str:
    return f"""(function() {{
  {_FIND_ELEMENT}
  const el = find({json.dumps(selector)});
  if (el) el.scrollIntoView({{ behavior: 'smooth', block: 'center' }});
  return !!el;
}})()"""


def exception_message(details: dict[str, Any]) -> str:
    """Best human-readable message from ``Runtime.evaluate`` exception details."""
    description = (details.get("exception") or {}).get("description")
    if not description:
        return details.get("text") or "Evaluation error"
    message = description.splitlines()[0]
    for prefix in ("Uncaught Error: ", "Error: "):
        if message.startswith(prefix):
            return message[len(prefix):]
    return message
