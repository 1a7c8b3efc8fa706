"""
OBO token broker service package.

The broker sits between client-facing routes and the Finance & Operations
OData endpoint:
- Authentication: inbound Entra ID assertions validated against the v2 and
  v1 key-sets with an issuer allow-list
- Delegation: assertions exchanged on-behalf-of the caller for downstream
  tokens, cached by fingerprint until 60 seconds before expiry
- Proxying: create/read/update/delete against /data/{entity}

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.jwks: Remote key-sets and the issuer registry.
- app.validation: Inbound JWT validation.
- app.obo: Token cache and OBO exchanger.
- app.context: Request-scoped assertion storage.
- app.odata: CRUD proxy and literal escaping.
- app.domain: Auth middleware.

Module import must not perform network calls; all IO happens in route
handlers, middleware, or startup hooks.
"""
