"""
Synthetic PNADC-like samples for testing and offline walkthroughs.

This module generates a small person-level table that *looks* like a labelled
quarter of the PNAD Contínua:
  - A stratified two-stage design: strata (Estrato), PSUs (UPA) inside each
    stratum, people inside each PSU.
  - Base weights (V1027), post-strata (posest), population projections (V1029)
    and calibrated weights (V1028) that are consistent with each other.
  - Labelled categorical variables (UF, V2007, V2010, V3001, VD3005, VD4002).
  - Labour-market measures (VD4016, VD4019, VD4020, VD4035) that are missing
    for people outside the labour force, as in the real survey.

These samples are invaluable for:
  - Running the walkthrough without downloading 150 MB from IBGE.
  - Testing estimators against a design with known structure.
  - Teaching: the generating process is explicit, so you can check whether
    weighted estimates recover it.
"""

import numpy as np
import pandas as pd


UF_NAMES = [
    "Rio Grande do Sul",
    "Santa Catarina",
    "Paraná",
    "São Paulo",
    "Bahia",
    "Pará",
]

SEX_LABELS = ["Homem", "Mulher"]

RACE_LABELS = ["Branca", "Preta", "Amarela", "Parda", "Indígena", "Ignorado"]
RACE_PROBS = [0.43, 0.10, 0.01, 0.45, 0.006, 0.004]

LITERACY_LABELS = ["Sim", "Não"]

SCHOOLING_LABELS = (
    ["Sem instrução e menos de 1 ano de estudo", "1 ano de estudo"]
    + [f"{k} anos de estudo" for k in range(2, 16)]
    + ["16 anos ou mais de estudo"]
)

OCCUPATION_LABELS = ["Pessoas ocupadas", "Pessoas desocupadas"]


def generate_synthetic_pnadc_sample(
    n_strata: int = 6,
    psus_per_stratum: int = 4,
    persons_per_psu: int = 25,
    year: int = 2024,
    quarter: int = 3,
    seed: int | None = None,
) -> pd.DataFrame:
    """
    Generate a labelled, person-level PNADC-like sample.

    **Conceptual**: Each stratum belongs to one state (UF). Within a stratum,
    PSUs are drawn with different inclusion probabilities, so their base
    weights differ; people in the same PSU share the PSU's weight (plus small
    household-level noise). Post-strata cross the state with an age band
    (under 40 / 40 and over), and the population projection of each post-stratum
    is the sum of its base weights times a random calibration factor. The
    calibrated weight V1028 is then exactly the post-stratified base weight.

    **Functionally**:
    - Output columns: Ano, Trimestre, UF, Estrato, UPA, V1027, V1028, V1029,
      posest, V2001, V2007, V2009, V2010, V3001, VD3005, VD4002, VD4016,
      VD4019, VD4020, VD4035.
    - Missing values follow the survey's skip rules:
        - V3001 and VD3005 only for age >= 5.
        - VD4002 only for age >= 14 and in the labour force.
        - VD4016, VD4019, VD4020 and VD4035 only for employed people.

    **Edge cases**:
    - psus_per_stratum = 1 yields lonely PSUs (useful for policy tests).
    - persons_per_psu = 0 yields an empty table with the full column set.

    Args:
        n_strata: Number of strata.
        psus_per_stratum: PSUs drawn per stratum.
        persons_per_psu: People interviewed per PSU.
        year: Reference year (Ano).
        quarter: Reference quarter (Trimestre).
        seed: Random seed for reproducibility.

    Returns:
        DataFrame, one row per person, labelled like label_pnadc output.
    """
    # Set random seed for reproducibility if provided
    if seed is not None:
        np.random.seed(seed)

    n_psu = n_strata * psus_per_stratum
    n = n_psu * persons_per_psu

    # Design structure: stratum and PSU of every person
    stratum_idx = np.repeat(np.arange(n_strata), psus_per_stratum * persons_per_psu)
    psu_idx = np.repeat(np.arange(n_psu), persons_per_psu)
    uf_idx = stratum_idx % len(UF_NAMES)

    # Base weights: one inclusion probability per PSU, small noise per person
    psu_weight = np.random.uniform(150.0, 600.0, size=n_psu)
    base_weight = psu_weight[psu_idx] * np.random.uniform(0.95, 1.05, size=n)

    # Demographics
    age = np.random.randint(0, 91, size=n)
    sex = np.random.randint(0, len(SEX_LABELS), size=n)
    race = np.random.choice(len(RACE_LABELS), size=n, p=RACE_PROBS)
    household_size = np.random.randint(1, 7, size=n)

    # Post-strata: state x age band, population = weight sum x calibration factor
    poststratum = uf_idx * 10 + (age >= 40).astype(int)
    calibration = pd.Series(np.random.uniform(0.9, 1.1, size=len(UF_NAMES) * 10))
    weight_sums = pd.Series(base_weight).groupby(poststratum).transform("sum").to_numpy()
    population = np.round(weight_sums * calibration.iloc[poststratum].to_numpy())
    calibrated_weight = base_weight * population / weight_sums

    # Education (age >= 5): more schooling in the richer states
    schooled = age >= 5
    years_of_study = np.clip(
        np.round(np.random.normal(9.0 - 0.6 * uf_idx, 4.0, size=n)),
        0,
        16,
    ).astype(int)
    years_of_study = np.minimum(years_of_study, np.maximum(age - 5, 0))
    literate = np.where(years_of_study >= 2, 0, np.random.randint(0, 2, size=n))

    # Labour market (age >= 14): participation, occupation, income and hours
    in_labour_force = (age >= 14) & (age <= 70) & (np.random.uniform(size=n) < 0.65)
    employed = in_labour_force & (np.random.uniform(size=n) < 0.92)

    log_income = 7.0 + 0.09 * years_of_study + np.random.normal(0.0, 0.7, size=n)
    main_income = np.round(np.exp(log_income), -1)
    all_jobs_income = main_income * np.where(np.random.uniform(size=n) < 0.1, 1.3, 1.0)
    effective_income = np.round(all_jobs_income * np.random.uniform(0.9, 1.1, size=n), -1)
    hours = np.clip(np.round(np.random.normal(40.0, 10.0, size=n)), 1, 100)

    df = pd.DataFrame({
        "Ano": str(year),
        "Trimestre": str(quarter),
        "UF": pd.Categorical.from_codes(uf_idx, categories=UF_NAMES),
        "Estrato": [f"{h + 1:07d}" for h in stratum_idx],
        "UPA": [f"{h + 1:02d}{j + 1:07d}" for h, j in zip(stratum_idx, psu_idx)],
        "V1027": base_weight,
        "V1028": calibrated_weight,
        "V1029": population,
        "posest": [f"{p:03d}" for p in poststratum],
        "V2001": household_size.astype(float),
        "V2007": pd.Categorical.from_codes(sex, categories=SEX_LABELS),
        "V2009": age.astype(float),
        "V2010": pd.Categorical.from_codes(race, categories=RACE_LABELS),
        "V3001": pd.Categorical.from_codes(np.where(schooled, literate, -1), categories=LITERACY_LABELS),
        "VD3005": pd.Categorical.from_codes(np.where(schooled, years_of_study, -1), categories=SCHOOLING_LABELS),
        "VD4002": pd.Categorical.from_codes(
            np.where(in_labour_force, np.where(employed, 0, 1), -1),
            categories=OCCUPATION_LABELS,
        ),
        "VD4016": np.where(employed, main_income, np.nan),
        "VD4019": np.where(employed, all_jobs_income, np.nan),
        "VD4020": np.where(employed, effective_income, np.nan),
        "VD4035": np.where(employed, hours, np.nan),
    })

    return df
