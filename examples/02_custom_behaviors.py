"""
Custom behaviors example of starlette-handler-chain.

Demonstrates:
- Replacing a builtin behavior (redirect) for the whole app
- Registering a new named behavior that returns a value and an error
- Rendering a Jinja2 template with the standard data envelope
"""

from pathlib import Path

from handler_chain import App, Env, EnvConfig, InvalidArgument, RequestContext

TEMPLATES = Path(__file__).parent / "templates"

app = App(Env.base(EnvConfig(template_directories=(str(TEMPLATES),))))


async def audited_redirect(
    ctx: RequestContext, code: int, location: str
) -> tuple[None, InvalidArgument | None]:
    """Redirect that only allows local targets."""
    if not location.startswith("/"):
        return None, InvalidArgument(f"refusing to redirect to {location}")
    ctx.release()
    ctx.writer.headers["location"] = location
    ctx.writer.write_header(code)
    await ctx.writer.write_header_now()
    return None, None


def lookup_price(ctx: RequestContext, sku: str) -> tuple[float, KeyError | None]:
    prices = {"apple": 0.5, "pear": 0.75}
    if sku not in prices:
        return 0.0, KeyError(sku)
    return prices[sku], None


app.add_function("redirect", audited_redirect)
app.add_function("lookup_price", lookup_price)


@app.get("/price/{sku}")
async def price(ctx: RequestContext) -> None:
    value, error = await ctx.call("lookup_price", ctx.get("sku"))
    if error is not None:
        await ctx.abort(404)
        return
    error = await ctx.render_template("price.html", {"sku": ctx.get("sku"), "price": value})
    if error is not None:
        await ctx.serve_plain(500, str(error))


@app.get("/away")
async def away(ctx: RequestContext) -> None:
    error = await ctx.redirect(302, "https://example.com/")
    if error is not None:
        await ctx.serve_plain(400, str(error))


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)

    # Test with:
    # curl http://localhost:8000/price/apple
    # curl http://localhost:8000/away
