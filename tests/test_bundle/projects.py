"""Small on-disk script projects for the bundle tests."""

import json
from pathlib import Path
from typing import Dict


def write_tree(root: Path, files: Dict[str, str]) -> Path:
    """Write ``{relative path: content}`` below ``root``."""
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


def sample_project(root: Path) -> Path:
    """A project with relative, bare, JSON and template requires.

    Returns:
        Path of the entry script
    """
    write_tree(root, {
        'package.json': json.dumps({'name': 'demo', 'version': '1.0.0'}),
        'app/main.js': (
            "var util = require('./util');\n"
            "var pad = require('left-pad');\n"
            "module.exports = util.add(1, 2);\n"
        ),
        'app/util.js': "exports.add = function (a, b) { return a + b; };\n",
        'node_modules/left-pad/package.json': json.dumps({'main': 'lib/pad'}),
        'node_modules/left-pad/lib/pad.js': "module.exports = function (s) { return s; };\n",
    })
    return root / 'app' / 'main.js'
