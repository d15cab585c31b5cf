import os
import shutil
import tempfile

import numpy as np
import pandas as pd

SPECIES_CENTERS = {
    'Adelie': (38.8, 18.3, 190.0, 3700.0),
    'Chinstrap': (48.8, 18.4, 196.0, 3730.0),
    'Gentoo': (47.5, 15.0, 217.0, 5080.0),
}


def make_blobs(centers, n_per_blob=50, spread=0.3, seed=0):
    """Well separated gaussian blobs; returns (DataFrame, true blob ids)."""
    rng = np.random.RandomState(seed)
    rows, truth = [], []
    for i, center in enumerate(centers):
        rows.append(rng.normal(loc=center, scale=spread, size=(n_per_blob, len(center))))
        truth.extend([i] * n_per_blob)
    X = np.vstack(rows)
    df = pd.DataFrame(X, columns=[f'f{j}' for j in range(X.shape[1])])
    return df, np.array(truth)


def make_four_points():
    return pd.DataFrame(
        {'x': [0.0, 0.0, 10.0, 10.0], 'y': [0.0, 1.0, 0.0, 1.0]},
        index=['a', 'b', 'c', 'd'],
    )


def make_penguin_like(n_per_species=30, seed=1, with_missing=True):
    """Penguin-shaped table with the real column names and a few gaps."""
    rng = np.random.RandomState(seed)
    frames = []
    for species, (bl, bd, fl, bm) in SPECIES_CENTERS.items():
        frames.append(pd.DataFrame({
            'species': species,
            'island': 'Biscoe',
            'bill_length_mm': rng.normal(bl, 1.0, n_per_species),
            'bill_depth_mm': rng.normal(bd, 0.4, n_per_species),
            'flipper_length_mm': rng.normal(fl, 3.0, n_per_species),
            'body_mass_g': rng.normal(bm, 150.0, n_per_species),
            'sex': rng.choice(['Male', 'Female'], n_per_species),
        }))
    df = pd.concat(frames, ignore_index=True)
    if with_missing:
        df.loc[[3, 40], 'bill_length_mm'] = np.nan
        df.loc[7, 'sex'] = np.nan
    return df


def make_emissions_like(n_countries=25, seed=2):
    rng = np.random.RandomState(seed)
    return pd.DataFrame({
        'country': [f'Country {i:02d}' for i in range(n_countries)],
        'ghg_emissions': rng.uniform(10, 1000, n_countries),
        'co2_per_capita': rng.uniform(0.5, 20, n_countries),
        'energy_use': rng.uniform(100, 5000, n_countries),
        'population_m': rng.uniform(1, 300, n_countries),
    })


def make_temp_export_dir():
    tmp = tempfile.mkdtemp(prefix='exports_')
    return tmp


def cleanup_dir(d):
    if os.path.isdir(d):
        shutil.rmtree(d)
