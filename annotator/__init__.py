"""
Filla annotator - image annotation editor.

This package contains the application modules:
- core: Application core and wiring
- ui: Main window
- editor: Annotation models, tools, canvas, history and autosave
- services: Configuration, logging, image loading and the annotation store
"""

__version__ = "0.1.0"
