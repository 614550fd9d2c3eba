"""Pure math and parsing primitives for quickslip.

Modules:
- ``text_normalizer``: half-width punctuation and whitespace canonicalisation
- ``entry_parsing``:   entry market classifier and semantic keys
- ``odds_math``:       clamping, decimal-odds coercion, implied probability
- ``atomic``:          disjoint outcome-atom decomposition of one match
- ``kelly``:           Kelly criterion over a discrete outcome distribution
- ``engine_config``:   defaults for parsing and staking (env-overridable)

Nothing here logs or imports from ``quickslip.services``. The only I/O is
``EngineConfig.from_env`` reading the environment and an optional ``.env``.
"""
