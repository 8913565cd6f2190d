# On-device generation engine
#
# This package owns the model lifecycle and the generation loop, and falls
# back to canned answers when no usable model is present.
#
# Key components:
#   - backends/             Native inference backends (llama.cpp)
#   - registry.py           Maps file extensions / formats to backends
#   - loader.py             ModelLoader + ModelHandle
#   - generation_engine.py  Load / generate state machine
#   - sampling.py           GenerationConfig + token selection
#   - fallback.py           Rule-based canned responder
#   - tokenizer.py          Whitespace tokenizer used by the fallback path
#   - types.py / errors.py  Result types and error hierarchy
