"""In-page probe installed into the host document.

The probe owns nothing in the host tree. It hands out opaque tokens for nodes
(kept as ``WeakRef`` so the host may drop them at any time) and exposes small
query and interaction primitives. Every decision about what those nodes mean
is taken on the Python side.
"""

from __future__ import annotations

from typing import Any

from calgroups.constants import (
    CONTAINER_ANCESTOR_SELECTORS,
    CONTAINER_MAX_TEXT,
    NATIVE_ID_ATTRIBUTES,
    TOGGLE_SELECTOR,
)

PROBE_GLOBAL = "__calgroupsProbe"

PROBE_INSTALL_JS = """
(cfg) => {
  const existing = window.__calgroupsProbe;
  if (existing && existing.version === cfg.version) return existing.loadId;

  const TOGGLE = String(cfg.toggle);
  const tokens = new WeakMap();
  const refs = new Map();
  const savedStyles = new Map();
  const watch = { observer: null, batches: 0, buffer: [], seen: new Set() };
  let seq = 0;
  const loadId = `${Date.now().toString(36)}-${Math.random().toString(36).slice(2, 8)}`;

  const tokenFor = (el) => {
    let token = tokens.get(el);
    if (!token) {
      seq += 1;
      token = `n${seq}`;
      tokens.set(el, token);
      refs.set(token, new WeakRef(el));
    }
    return token;
  };

  const resolve = (token) => {
    const ref = refs.get(String(token || ''));
    const el = ref ? ref.deref() : null;
    if (!el || !el.isConnected) {
      if (ref) refs.delete(String(token));
      return null;
    }
    return el;
  };

  const trimmed = (value) => String(value || '').trim();

  const controlOf = (el) => {
    if (el.matches(TOGGLE)) return el;
    const role = el.querySelector('[role="checkbox"]');
    if (role) return role;
    const input = el.querySelector('input[type="checkbox"]');
    if (input) return input;
    return el.parentElement ? el.parentElement.querySelector(TOGGLE) : null;
  };

  const findContainer = (toggle) => {
    const p1 = toggle.parentElement;
    const p2 = p1 ? p1.parentElement : null;
    const p3 = p2 ? p2.parentElement : null;
    const options = [
      ...cfg.containerAncestors.map((sel) => toggle.closest(sel)),
      p1, p2, p3,
    ].filter(Boolean);
    for (const node of options) {
      if (node === document.body || node === document.documentElement) continue;
      const len = trimmed(node.textContent).length;
      if (len > 0 && len < cfg.containerMaxText) return node;
    }
    return p1;
  };

  const structuralPath = (el) => {
    const parts = [];
    let node = el;
    while (node && node !== document.body && node.parentElement) {
      const index = Array.prototype.indexOf.call(node.parentElement.children, node);
      parts.push(`${node.tagName.toLowerCase()}:${index}`);
      node = node.parentElement;
    }
    return parts.reverse().join('/');
  };

  const firstAttr = (el, attr) => {
    for (const node of el.querySelectorAll(`[${attr}]`)) {
      const value = trimmed(node.getAttribute(attr));
      if (value) return value;
    }
    return '';
  };

  const describe = (el) => {
    const own = el.matches(TOGGLE) ? 1 : 0;
    const nativeIds = [];
    for (const attr of cfg.nativeIds) {
      const value = trimmed(el.getAttribute(attr));
      if (value) {
        nativeIds.push([attr, value]);
        continue;
      }
      const child = el.querySelector(`[${attr}]`);
      const childValue = child ? trimmed(child.getAttribute(attr)) : '';
      if (childValue) nativeIds.push([attr, childValue]);
    }
    const parent = el.parentElement;
    return {
      token: tokenFor(el),
      text: trimmed(el.textContent),
      ariaLabel: trimmed(el.getAttribute('aria-label')),
      title: trimmed(el.getAttribute('title')),
      descendantLabel: firstAttr(el, 'aria-label'),
      descendantTitle: firstAttr(el, 'title'),
      shortTexts: Array.from(el.querySelectorAll('span, div'))
        .slice(0, 40)
        .map((node) => trimmed(node.textContent))
        .filter(Boolean),
      nativeIds,
      siblingIndex: parent ? Array.prototype.indexOf.call(parent.children, el) : 0,
      toggleCount: own + el.querySelectorAll(TOGGLE).length,
      path: structuralPath(el),
    };
  };

  const containersOf = (toggles, out, seen) => {
    for (const toggle of toggles) {
      const container = findContainer(toggle);
      if (!container) continue;
      const token = tokenFor(container);
      if (seen.has(token)) continue;
      seen.add(token);
      out.push(describe(container));
    }
  };

  const queryAll = (selector, root = document) => {
    try {
      return Array.from(root.querySelectorAll(selector));
    } catch (err) {
      return [];
    }
  };

  const queryFirst = (selector) => {
    try {
      return document.querySelector(selector);
    } catch (err) {
      return null;
    }
  };

  const isScrollable = (el) => {
    const style = window.getComputedStyle(el);
    const overflow = [style.overflow, style.overflowY].some((v) => v === 'auto' || v === 'scroll');
    return overflow && el.scrollHeight > el.clientHeight;
  };

  const metrics = (el) => ({
    token: tokenFor(el),
    scrollTop: el.scrollTop,
    scrollHeight: el.scrollHeight,
    clientHeight: el.clientHeight,
  });

  const isSecondaryToggle = (el, args) => {
    const label = trimmed(el.getAttribute('aria-label')).toLowerCase();
    const text = trimmed(el.textContent).toLowerCase();
    const hit = (args.patterns || []).some((p) => label.includes(p) || text.includes(p));
    return hit || !!el.closest(args.drawer);
  };

  const nearArea = (el, areaSelectors) => areaSelectors.some((sel) => {
    try {
      return !!el.closest(sel);
    } catch (err) {
      return false;
    }
  });

  const ops = {
    toggleCount: () => queryAll(TOGGLE).length,

    collectRoots: (args) => {
      const out = [];
      const seen = new Set();
      for (const selector of args.selectors || []) {
        const root = queryFirst(selector);
        if (root) containersOf(queryAll(TOGGLE, root), out, seen);
      }
      return out;
    },

    collectToggles: () => {
      const out = [];
      containersOf(queryAll(TOGGLE), out, new Set());
      return out;
    },

    collectPatterns: (args) => {
      const out = [];
      const seen = new Set();
      const limit = Number(args.limit || 5000);
      for (const selector of args.selectors || []) {
        const toggles = [];
        for (const el of queryAll(selector).slice(0, limit)) {
          const toggle = el.querySelector(TOGGLE);
          if (toggle) toggles.push(toggle);
        }
        containersOf(toggles, out, seen);
      }
      return out;
    },

    collectNearText: (args) => {
      const out = [];
      const seen = new Set();
      for (const label of args.labels || []) {
        const safe = String(label).replace(/"/g, '');
        const xpath = `//div[contains(text(), "${safe}") or contains(@aria-label, "${safe}")]`;
        const result = document.evaluate(xpath, document, null, XPathResult.ORDERED_NODE_SNAPSHOT_TYPE, null);
        for (let i = 0; i < result.snapshotLength; i++) {
          const parent = result.snapshotItem(i).parentElement;
          if (parent) containersOf(queryAll(TOGGLE, parent), out, seen);
        }
      }
      return out;
    },

    describe: (args) => {
      const out = [];
      for (const token of args.tokens || []) {
        const el = resolve(token);
        if (el) out.push(describe(el));
      }
      return out;
    },

    readState: (args) => {
      const el = resolve(args.token);
      if (!el) return { ok: false };
      const control = controlOf(el);
      if (!control) return { ok: true, hasControl: false };
      const isInput = control.tagName === 'INPUT' && control.type === 'checkbox';
      return {
        ok: true,
        hasControl: true,
        checkedProp: isInput ? !!control.checked : null,
        ariaChecked: control.getAttribute('aria-checked'),
        ariaPressed: control.getAttribute('aria-pressed'),
      };
    },

    interact: (args) => {
      const el = resolve(args.token);
      if (!el) return { ok: false };
      const control = controlOf(el);
      if (!control) return { ok: false };
      const target = !!args.target;
      if (args.method === 'click') {
        control.click();
      } else if (args.method === 'pointer_events') {
        for (const type of ['mousedown', 'mouseup', 'click']) {
          control.dispatchEvent(new MouseEvent(type, { bubbles: true, cancelable: true, view: window }));
        }
      } else if (args.method === 'key_activation') {
        for (const type of ['keydown', 'keyup']) {
          control.dispatchEvent(new KeyboardEvent(type, { key: ' ', code: 'Space', bubbles: true, cancelable: true }));
        }
      } else if (args.method === 'direct_mutation') {
        if (control.hasAttribute('aria-checked')) control.setAttribute('aria-checked', String(target));
        if (control.hasAttribute('aria-pressed')) control.setAttribute('aria-pressed', String(target));
        if (control.tagName === 'INPUT' && control.type === 'checkbox') {
          control.checked = target;
          control.dispatchEvent(new Event('change', { bubbles: true }));
        }
      } else {
        return { ok: false };
      }
      return { ok: true };
    },

    activate: (args) => {
      const el = resolve(args.token);
      if (!el) return { ok: false };
      el.click();
      return { ok: true };
    },

    secondaryToggles: (args) => {
      const out = [];
      for (const el of queryAll('[aria-expanded="true"]')) {
        if (isSecondaryToggle(el, args)) out.push(tokenFor(el));
      }
      return out;
    },

    expandables: (args) => {
      const out = [];
      const seen = new Set();
      for (const selector of args.selectors || []) {
        for (const el of queryAll(selector)) {
          if (!nearArea(el, args.areaSelectors || [])) continue;
          if (isSecondaryToggle(el, args)) continue;
          const token = tokenFor(el);
          if (seen.has(token)) continue;
          seen.add(token);
          out.push(token);
        }
      }
      return out;
    },

    scrollContainers: (args) => {
      const out = [];
      const seen = new Set();
      const push = (el) => {
        const token = tokenFor(el);
        if (seen.has(token)) return;
        seen.add(token);
        out.push(metrics(el));
      };
      for (const selector of args.selectors || []) {
        for (const el of queryAll(selector)) {
          if (isScrollable(el)) push(el);
        }
      }
      for (const toggle of queryAll(TOGGLE)) {
        let parent = toggle.parentElement;
        while (parent && parent !== document.body) {
          if (isScrollable(parent)) {
            push(parent);
            break;
          }
          parent = parent.parentElement;
        }
      }
      return out;
    },

    scrollTo: (args) => {
      const el = resolve(args.token);
      if (!el) return { ok: false };
      if (args.smooth && typeof el.scrollTo === 'function') {
        el.scrollTo({ top: Number(args.top || 0), behavior: 'smooth' });
      } else {
        el.scrollTop = Number(args.top || 0);
      }
      void el.offsetHeight;
      return { ok: true, scrollTop: el.scrollTop };
    },

    wheel: (args) => {
      const el = resolve(args.token);
      if (!el) return { ok: false };
      el.dispatchEvent(new WheelEvent('wheel', { deltaY: Number(args.deltaY || 0), bubbles: true, cancelable: true }));
      return { ok: true };
    },

    scrollEvents: (args) => {
      const el = resolve(args.token);
      if (!el) return { ok: false };
      for (const type of ['scroll', 'scrollstart', 'scrollend']) {
        el.dispatchEvent(new Event(type, { bubbles: true, cancelable: true }));
      }
      return { ok: true };
    },

    reflow: (args) => {
      void document.body.offsetHeight;
      for (const el of queryAll((args.selectors || []).join(','))) void el.offsetHeight;
      window.dispatchEvent(new Event('resize'));
      const style = document.createElement('style');
      style.textContent = '/* recalc */';
      document.head.appendChild(style);
      setTimeout(() => style.remove(), 50);
      return { ok: true };
    },

    relax: (args) => {
      const el = resolve(args.token);
      if (!el) return { ok: false };
      const token = String(args.token);
      if (args.phase === 'open') {
        if (!savedStyles.has(token)) {
          savedStyles.set(token, { height: el.style.height, maxHeight: el.style.maxHeight });
        }
        el.style.height = 'auto';
        el.style.maxHeight = 'none';
      } else if (args.phase === 'pulse') {
        el.style.transform = 'translateZ(0)';
        setTimeout(() => { el.style.transform = ''; }, 50);
      } else if (args.phase === 'intoView') {
        if (typeof el.scrollIntoView === 'function') el.scrollIntoView({ behavior: 'instant' });
      } else {
        const saved = savedStyles.get(token);
        if (saved) {
          el.style.height = saved.height;
          el.style.maxHeight = saved.maxHeight;
          savedStyles.delete(token);
        }
      }
      return { ok: true };
    },

    observeStart: () => {
      if (watch.observer) watch.observer.disconnect();
      watch.batches = 0;
      watch.buffer = [];
      watch.seen = new Set();
      watch.observer = new MutationObserver((mutations) => {
        watch.batches += 1;
        for (const mutation of mutations) {
          if (mutation.type !== 'childList') continue;
          for (const node of mutation.addedNodes) {
            if (node.nodeType !== Node.ELEMENT_NODE) continue;
            const toggles = node.matches(TOGGLE) ? [node] : [];
            toggles.push(...node.querySelectorAll(TOGGLE));
            for (const toggle of toggles) {
              const container = findContainer(toggle);
              if (!container) continue;
              const token = tokenFor(container);
              if (watch.seen.has(token)) continue;
              watch.seen.add(token);
              watch.buffer.push(describe(container));
            }
          }
        }
      });
      watch.observer.observe(document.body, { childList: true, subtree: true });
      return { ok: true };
    },

    observeDrain: () => {
      const out = { batches: watch.batches, candidates: watch.buffer };
      watch.batches = 0;
      watch.buffer = [];
      return out;
    },

    observeStop: () => {
      if (watch.observer) watch.observer.disconnect();
      watch.observer = null;
      watch.buffer = [];
      return { ok: true };
    },
  };

  window.__calgroupsProbe = {
    version: cfg.version,
    loadId,
    call: (op, args) => {
      const fn = ops[op];
      if (!fn) throw new Error(`unknown probe op: ${op}`);
      return fn(args || {});
    },
  };
  return loadId;
}
"""

PROBE_CALL_JS = "([op, args]) => window.__calgroupsProbe.call(op, args)"

PROBE_PRESENT_JS = "() => window.__calgroupsProbe ? window.__calgroupsProbe.loadId : ''"


def probe_config(version: str = "1") -> dict[str, Any]:
    return {
        "version": version,
        "toggle": TOGGLE_SELECTOR,
        "containerAncestors": list(CONTAINER_ANCESTOR_SELECTORS),
        "containerMaxText": CONTAINER_MAX_TEXT,
        "nativeIds": list(NATIVE_ID_ATTRIBUTES),
    }
