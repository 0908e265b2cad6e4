"""
Basic usage example of starlette-handler-chain.

Demonstrates:
- Registering routes with a shared middleware handler
- Passing values down the chain through the context store
- Flash messages surviving a redirect
"""

from handler_chain import App, RequestContext

app = App()


async def load_user(ctx: RequestContext) -> None:
    """Middleware - resolve the user before the route handler runs."""
    # In production, look the user up from the session or a token
    ctx.set("user", ctx.session.get("user") if ctx.session else None)
    await ctx.next()


app.use(load_user)


@app.get("/")
async def index(ctx: RequestContext) -> None:
    """Public page - shows any pending flash messages."""
    messages = await ctx.flash_messages("info")
    name = ctx.get("user") or "stranger"
    await ctx.serve_plain(200, f"Hello, {name}! {' '.join(messages)}")


@app.post("/login/{name}")
async def login(ctx: RequestContext) -> None:
    """Store the user in the session and redirect home."""
    ctx.session.set("user", ctx.get("name"))
    await ctx.flash("info", "Logged in.")
    await ctx.redirect(303, "/")


@app.get("/me")
async def me(ctx: RequestContext) -> None:
    """Requires a user; a missing one ends the request with a 500."""
    await ctx.serve_plain(200, ctx.must_get("user"))


@app.status_handler(404)
async def not_found(ctx: RequestContext) -> None:
    await ctx.serve_plain(404, "Nothing here.")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)

    # Test with:
    # curl -c jar -b jar -X POST http://localhost:8000/login/alice
    # curl -c jar -b jar http://localhost:8000/
    # curl http://localhost:8000/missing
