"""Build tasks for Minecraft Bedrock add-ons.

Modules:
    builder: Builder that runs one named task
    config: Task configuration models and package descriptors
    pipelines: Registration of the built-in tasks
    tasks: Leaf task actions
    mirror: Merge-copy of directory trees
    archive: Deterministic zip archives
    collaborators: Compiler, bundler and linter invocation
    utils: Glob and path helpers

Import the submodules directly; the watch controller in ``packsmith.core``
depends on ``packsmith.build.utils``, so this package imports nothing eagerly.
"""
