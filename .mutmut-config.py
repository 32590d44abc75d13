"""Mutmut configuration for mutation testing.

Usage:
    # Test the post-processor (default):
    uv run mutmut run --paths-to-mutate=src/protoforge/postprocess/

    # Test the coordinator:
    uv run mutmut run --paths-to-mutate=src/protoforge/pipeline/

    # View results:
    uv run mutmut results
    uv run mutmut show <id>
"""


def pre_mutation(context):
    """Filter mutations to the pipeline logic, skip boilerplate."""
    filename = context.filename

    if "/tests/" in filename or filename.startswith("tests/"):
        context.skip = True
        return

    # Re-export modules only
    if filename.endswith("__init__.py"):
        context.skip = True
        return

    # Console output and argument parsing
    if filename.endswith(("console.py", "scripts/generate.py")):
        context.skip = True


def pre_mutation_ast(context):
    """Skip mutations in logging calls and docstrings."""
    line = context.current_source_line.strip()
    if line.startswith(("LOGGER.", "_logger.")):
        context.skip = True
        return

    if '"""' in line or "'''" in line:
        context.skip = True
