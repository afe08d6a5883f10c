import nox

PYTHONS = ["3.11", "3.12", "3.13"]


@nox.session(python=PYTHONS)
def tests(session):
    session.install(".[dev]")
    session.run("pytest", "tests", "--ignore=tests/c_e2e", *session.posargs)


@nox.session(python=PYTHONS[-1])
def examples(session):
    # Runs the example scripts as subprocesses
    session.install(".[dev]")
    session.run("pytest", "tests/c_e2e", *session.posargs)
