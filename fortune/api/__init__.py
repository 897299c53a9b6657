"""HTTP layer (FastAPI).

Every registered resource gets collection and item routes under the
configured namespace; documents follow the JSON API conventions of
`fortune.api.serialize`.

The layer is thin: persistence lives in `fortune.storage`, transforms in
`fortune.hooks`.
"""
