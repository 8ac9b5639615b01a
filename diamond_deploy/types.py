import click

from diamond_deploy.selectors import normalize_selector


class StepIndex(click.ParamType):
    """Zero-based position in a run's sequence of wiring steps."""

    name = "step"

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            index = value
        else:
            try:
                index = int(value)
            except ValueError:
                self.fail(f"{value!r} is not a step number", param, ctx)
        if index < 0:
            self.fail(f"step {index} is negative; steps are counted from 0", param, ctx)
        return index


class FunctionSelector(click.ParamType):
    name = "selector"

    def convert(self, value, param, ctx):
        try:
            return normalize_selector(value)
        except ValueError as error:
            self.fail(str(error), param, ctx)
