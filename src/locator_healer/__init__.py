"""
Locator healing engine.

Recovers broken UI-element locators by searching a fresh UI-tree snapshot
for the element that best matches the original locator, and remembers
past healings in a reliability-tracked cache.
"""

__version__ = "0.1.0"
