"""
Pytest configuration file.

Ensures the repo root is on sys.path so that 'import pnadc_survey...' works,
selects the non-interactive matplotlib backend before any chart module
imports pyplot, and provides a tiny PNADC quarter (fixed-width microdata,
SAS layout and dictionary) written to a temporary folder.
"""
import sys
from pathlib import Path
from types import SimpleNamespace

import matplotlib

matplotlib.use("Agg")

import pandas as pd
import pytest

# Add the repo root to sys.path
repo_root = Path(__file__).parent.parent
if str(repo_root) not in sys.path:
    sys.path.insert(0, str(repo_root))


# Columns: Ano 1-4, UF 5-6, UPA 7-9, Estrato 10-11, V1027 12-16, V1028 17-21,
# V2009 22-24, V2010 25, VD4016 26-31 (two implied decimals)
LAYOUT_TEXT = """DATA pnadc_032024;
INFILE "PNADC_032024.txt" LRECL=31;
INPUT
@0001 Ano $4. /* Ano de referência */
@0005 UF $2. /* Unidade da Federação */
@0007 UPA $3. /* Unidade Primária de Amostragem */
@0010 Estrato $2. /* Estrato */
@0012 V1027 5. /* Peso sem pós estratificação */
@0017 V1028 5. /* Peso com pós estratificação */
@0022 V2009 3. /* Idade do morador */
@0025 V2010 $1. /* Cor ou raça */
@0026 VD4016 6.2 /* Rendimento habitual */
;
RUN;
"""

MICRODATA_LINES = [
    "2024" "43" "001" "01" "00150" "00160" " 35" "1" "123456",
    "2024" "42" "002" "01" "00200" "00210" "   " "7" "      ",
    "2024" "43" "003" "02" "00100" "00110" "  7" "4" "  12.5",
    "2024" "43" "004" "02" "00120" "00130" " 60" " " "000100",
]

DICTIONARY_ROWS = [
    ["Posição Inicial", "Tamanho", "Código da variável", "Quesito nº", "Quesito descrição", "Categorias Tipo", "Categorias descrição"],
    ["1", "4", "Ano", "", "Ano de referência", "", ""],
    ["5", "2", "UF", "", "Unidade da Federação", "42", "Santa Catarina"],
    ["", "", "", "", "", "43", "Rio Grande do Sul"],
    ["7", "3", "UPA", "", "Unidade Primária de Amostragem", "", ""],
    ["25", "1", "V2010", "9", "Cor ou raça", "1", "Branca"],
    ["", "", "", "", "", "2", "Preta"],
    ["", "", "", "", "", "3", "Amarela"],
    ["", "", "", "", "", "4", "Parda"],
    ["", "", "", "", "", "5", "Indígena"],
    ["", "", "", "", "", "9", "Ignorado"],
]


def write_pnadc_files(folder: Path) -> SimpleNamespace:
    """Write the tiny quarter into `folder` and return the three paths."""
    folder.mkdir(parents=True, exist_ok=True)

    layout = folder / "input_PNADC_trimestral.txt"
    layout.write_text(LAYOUT_TEXT, encoding="latin-1")

    microdata = folder / "PNADC_032024.txt"
    microdata.write_text("\n".join(MICRODATA_LINES) + "\n", encoding="latin-1")

    dictionary = folder / "dicionario_PNADC_microdados_trimestral.csv"
    pd.DataFrame(DICTIONARY_ROWS).to_csv(dictionary, header=False, index=False)

    return SimpleNamespace(microdata=microdata, layout=layout, dictionary=dictionary)


@pytest.fixture
def pnadc_files(tmp_path):
    """Tiny PNADC quarter on disk: microdata, layout and CSV dictionary."""
    return write_pnadc_files(tmp_path / "raw")
