"""
Components layer.

Each component is a small, explicit step of the request pipeline with a
typed input/output contract (see `contracts.py`):
normalizer -> decision_engine -> package_resolver -> prompt_composer ->
model_router -> stage_runner -> postprocessor -> response_assembler.
"""
