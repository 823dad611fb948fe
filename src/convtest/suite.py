# suite.py
# Built-in checks for pandoc container images.
#
#   test-minimal  minimal base image
#   test-core     pandoc-crossref and friends
#   test-latex    LaTeX image: PDF engines, languages, bibliographies, highlighting
#   test-extra    extra image: third-party templates
from __future__ import annotations

from typing import List

from .dsl import copy, group, matrix, probe, suite, target
from .model import Target

OUTPUT_FORMATS = ["markdown", "epub", "docx", "latex", "html"]

# Every highlighting style pandoc ships; each one must have its LaTeX packages.
HIGHLIGHT_STYLES = [
    "pygments",
    "kate",
    "monochrome",
    "breezeDark",
    "espresso",
    "zenburn",
    "haddock",
    "tango",
]

XELATEX = "--pdf-engine=xelatex"
STRICT = "--fail-if-warnings"


def _minimal() -> List[Target]:
    return suite(
        matrix("format", OUTPUT_FORMATS).targets(
            # Pure HTML cannot represent fractions, so render math as MathML.
            lambda fmt: target(
                f"testsuite-to-{fmt}",
                "testsuite.native", "--output=/dev/null", f"--to={fmt}", "--mathml",
                fixtures=["testsuite.native"],
            )
        ),
        target(
            "test-lua",
            "--lua-filter=lpeg-test.lua", "--to=json", "--output=/dev/null", "testsuite.native",
            fixtures=["testsuite.native", "lpeg-test.lua"],
        ),
        group("test-minimal", "test-lua", *(f"testsuite-to-{fmt}" for fmt in OUTPUT_FORMATS)),
    )


def _core() -> List[Target]:
    return suite(
        target(
            "test-crossref-is-callable",
            "--version",
            entrypoint="pandoc-crossref",
            description="pandoc-crossref is in PATH and runs",
        ),
        target(
            "test-crossref-filter",
            "--filter=pandoc-crossref", "--to=native", "crossref-test.md",
            fixtures=["crossref-test.md", "minversion.lua"],
            expected="crossref-test.native",
            probe=probe(
                "--metadata=minversion=2.16", "--lua-filter=minversion.lua",
                description="pandoc 2.16 or newer",
            ),
        ),
        group("test-core", "test-crossref-is-callable", "test-crossref-filter"),
    )


def _render(name: str, source: str, *extra: str, fixtures: List[str] | None = None) -> Target:
    return target(
        name,
        STRICT, source, *extra, "--output={output}",
        fixtures=[source, *(fixtures or [])],
        output=name,
    )


def _latex() -> List[Target]:
    code_targets = matrix("style", HIGHLIGHT_STYLES).targets(
        lambda style: _render(
            f"output/code-highlight-{style}.pdf",
            "code-highlight.md",
            f"--highlight-style={style}",
        )
    )
    return suite(
        _render("output/testsuite.pdf", "testsuite.native", XELATEX),
        _render("output/french.pdf", "french.md", XELATEX),
        _render("output/german.pdf", "german.md", XELATEX),
        _render(
            "output/lorem-geometry.pdf", "lorem.md",
            "--metadata-file=geometry.yaml", XELATEX,
            fixtures=["geometry.yaml"],
        ),
        _render(
            "output/lorem-optional-packages.pdf", "lorem.md",
            "optional-packages.yaml", XELATEX,
            fixtures=["optional-packages.yaml"],
        ),
        _render(
            "output/test-beamer.pdf", "test-beamer.md",
            "--to=beamer", "--bibliography=example.bib", XELATEX,
            fixtures=["example.bib"],
        ),
        _render(
            "output/test-natbib.pdf", "test-beamer.md",
            "--natbib", "--bibliography=example.bib", XELATEX,
            fixtures=["example.bib"],
        ),
        _render(
            "output/test-biblatex.tex", "test-beamer.md",
            "--biblatex", "--standalone", "--bibliography=example.bib",
            fixtures=["example.bib"],
        ),
        copy("output/example.bib", "example.bib"),
        copy("output/baboon.png", "baboon.png"),
        target(
            "output/test-biblatex.pdf",
            "test-biblatex",
            needs=["output/test-biblatex.tex", "output/example.bib", "output/baboon.png"],
            fixtures=["pdf-via-biblatex.sh"],
            entrypoint="/data/pdf-via-biblatex.sh",
            output="output/test-biblatex.pdf",
        ),
        code_targets,
        group(
            "test-latex",
            "output/testsuite.pdf",
            "output/french.pdf",
            "output/german.pdf",
            "output/lorem-geometry.pdf",
            "output/lorem-optional-packages.pdf",
            "output/test-beamer.pdf",
            "output/test-natbib.pdf",
            "output/test-biblatex.pdf",
            *(t.name for t in code_targets),
        ),
    )


def _extra() -> List[Target]:
    return suite(
        _render("output/eisvogel.pdf", "eisvogel.md", "--template=eisvogel", XELATEX),
        group("test-extra", "output/eisvogel.pdf"),
    )


def default_targets() -> List[Target]:
    return suite(
        _minimal(),
        _core(),
        _latex(),
        _extra(),
        group("test", "test-minimal", "test-latex", "test-extra"),
        group("all", "test-minimal", "test-core", "test-latex", "test-extra"),
    )
