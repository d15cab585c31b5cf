import unittest
import warnings

import numpy as np
import pandas as pd

from cluster_lab.data_processing.clustering_utils import (
    InvalidClusterCountError,
    MergeTree,
    compare_trees,
    compute_distance_matrix,
    entanglement,
    hierarchical_clustering,
    restart_seeds,
    run_kmeans,
    untangle,
)
from cluster_lab.data_processing.normalization_utils import scale_features
from tests.conftest import make_blobs, make_four_points


class TestKMeans(unittest.TestCase):
    def setUp(self):
        self.df, self.truth = make_blobs([(0, 0), (10, 0), (0, 10)], n_per_blob=50, seed=3)

    def test_three_blobs_recovered(self):
        result = run_kmeans(self.df, 3, n_restarts=10, random_state=42)
        self.assertEqual(sorted(result.sizes.tolist()), [50, 50, 50])
        # Each true blob maps onto a single cluster
        table = pd.crosstab(self.truth, result.labels.to_numpy())
        self.assertTrue(((table > 0).sum(axis=1) == 1).all())

    def test_labels_in_range(self):
        result = run_kmeans(self.df, 4, n_restarts=3, random_state=0)
        self.assertEqual(len(result.labels), len(self.df))
        self.assertTrue(result.labels.between(1, 4).all())
        self.assertListEqual(list(result.labels.index), list(self.df.index))
        self.assertListEqual(list(result.centroids.index), [1, 2, 3, 4])
        self.assertEqual(result.sizes.sum(), len(self.df))

    def test_deterministic_for_fixed_seed(self):
        a = run_kmeans(self.df, 3, n_restarts=5, random_state=7)
        b = run_kmeans(self.df, 3, n_restarts=5, random_state=7)
        pd.testing.assert_series_equal(a.labels, b.labels)
        self.assertEqual(a.inertia, b.inertia)

    def test_more_restarts_never_worse(self):
        df, _ = make_blobs([(0, 0), (3, 0), (0, 3), (3, 3)], n_per_blob=20, spread=1.0, seed=5)
        inertias = [run_kmeans(df, 4, n_restarts=r, random_state=11).inertia for r in (1, 2, 5, 10, 20)]
        for fewer, more in zip(inertias, inertias[1:]):
            self.assertLessEqual(more, fewer + 1e-9)

    def test_restart_seeds_prefix_stable(self):
        np.testing.assert_array_equal(restart_seeds(42, 10)[:3], restart_seeds(42, 3))

    def test_best_restart_has_lowest_inertia(self):
        result = run_kmeans(self.df, 3, n_restarts=6, random_state=1)
        self.assertEqual(len(result.restart_inertias), 6)
        self.assertAlmostEqual(result.inertia, min(result.restart_inertias))

    def test_centroids_are_member_means(self):
        result = run_kmeans(self.df, 3, n_restarts=3, random_state=2)
        members = self.df[result.labels == 1]
        np.testing.assert_allclose(result.centroids.loc[1].to_numpy(), members.mean().to_numpy())

    def test_invalid_cluster_counts(self):
        for k in (0, -1, len(self.df) + 1):
            with self.assertRaises(InvalidClusterCountError):
                run_kmeans(self.df, k)
        with self.assertRaises(InvalidClusterCountError):
            run_kmeans(self.df, 2.5)

    def test_k_equals_n(self):
        small = self.df.iloc[:5]
        result = run_kmeans(small, 5, n_restarts=2, random_state=0)
        self.assertEqual(sorted(result.sizes.tolist()), [1] * 5)
        self.assertAlmostEqual(result.inertia, 0.0)

    def test_accepts_scaled_features(self):
        scaled = scale_features(self.df)
        result = run_kmeans(scaled, 3, n_restarts=3, random_state=0)
        self.assertListEqual(list(result.centroids.columns), list(self.df.columns))

    def test_missing_values_rejected(self):
        df = self.df.copy()
        df.iloc[0, 0] = np.nan
        with self.assertRaises(ValueError):
            run_kmeans(df, 3)


class TestDistances(unittest.TestCase):
    def test_distance_matrix_properties(self):
        df, _ = make_blobs([(0, 0, 0), (5, 5, 5)], n_per_blob=10, seed=1)
        D = compute_distance_matrix(df)
        self.assertEqual(D.shape, (20, 20))
        np.testing.assert_allclose(D.to_numpy(), D.to_numpy().T)
        np.testing.assert_allclose(np.diag(D.to_numpy()), 0.0)
        self.assertTrue((D.to_numpy() >= 0).all())
        self.assertListEqual(list(D.index), list(df.index))

    def test_known_distance(self):
        D = compute_distance_matrix(make_four_points())
        self.assertAlmostEqual(D.loc['a', 'b'], 1.0)
        self.assertAlmostEqual(D.loc['a', 'd'], np.sqrt(101))


class TestHierarchical(unittest.TestCase):
    def setUp(self):
        rng = np.random.RandomState(4)
        self.df = pd.DataFrame(rng.normal(size=(12, 3)), index=[f'obs{i}' for i in range(12)])
        self.D = compute_distance_matrix(self.df)

    def test_n_minus_one_merges(self):
        tree = hierarchical_clustering(self.D, 'complete')
        self.assertEqual(tree.linkage_matrix.shape, (11, 4))
        self.assertEqual(len(tree.merges), 11)
        self.assertEqual(tree.merges['size'].iloc[-1], 12)
        self.assertListEqual(tree.labels, list(self.D.index))

    def test_heights_monotone(self):
        for method in ('single', 'complete', 'average', 'ward'):
            tree = hierarchical_clustering(self.D, method)
            self.assertTrue((np.diff(tree.heights) >= -1e-12).all(), method)

    def test_complete_heights_dominate_single(self):
        complete = hierarchical_clustering(self.D, 'complete')
        single = hierarchical_clustering(self.D, 'single')
        self.assertTrue((np.sort(complete.heights) >= np.sort(single.heights) - 1e-12).all())

    def test_four_points_cut_in_two(self):
        D = compute_distance_matrix(make_four_points())
        for method in ('complete', 'single'):
            cut = hierarchical_clustering(D, method).cut(2)
            self.assertEqual(cut.nunique(), 2)
            self.assertEqual(cut['a'], cut['b'])
            self.assertEqual(cut['c'], cut['d'])
            self.assertNotEqual(cut['a'], cut['c'])

    def test_four_points_merge_heights(self):
        D = compute_distance_matrix(make_four_points())
        complete = hierarchical_clustering(D, 'complete')
        single = hierarchical_clustering(D, 'single')
        np.testing.assert_allclose(complete.heights, [1.0, 1.0, np.sqrt(101)])
        np.testing.assert_allclose(single.heights, [1.0, 1.0, 10.0])

    def test_optimal_ordering_keeps_heights(self):
        plain = hierarchical_clustering(self.D, 'complete')
        ordered = hierarchical_clustering(self.D, 'complete', optimal_ordering=True)
        np.testing.assert_allclose(np.sort(plain.heights), np.sort(ordered.heights))
        self.assertEqual(sorted(ordered.leaf_order), sorted(self.D.index))

    def test_cophenetic_correlation_in_range(self):
        tree = hierarchical_clustering(self.D, 'average')
        corr = tree.cophenetic_correlation(self.D)
        self.assertTrue(-1.0 <= corr <= 1.0)

    def test_condensed_input_with_labels(self):
        condensed = self.D.to_numpy()[np.triu_indices(12, k=1)]
        tree = hierarchical_clustering(condensed, 'single', labels=list(self.D.index))
        self.assertListEqual(tree.labels, list(self.D.index))

    def test_invalid_inputs(self):
        with self.assertRaises(ValueError):
            hierarchical_clustering(self.D, 'nearest')
        asym = self.D.copy()
        asym.iloc[0, 1] += 1.0
        with self.assertRaises(ValueError):
            hierarchical_clustering(asym, 'complete')
        with self.assertRaises(ValueError):
            hierarchical_clustering(self.D.iloc[:1, :1], 'complete')

    def test_cut_invalid(self):
        tree = hierarchical_clustering(self.D, 'complete')
        with self.assertRaises(InvalidClusterCountError):
            tree.cut(13)


class TestTreeComparison(unittest.TestCase):
    def setUp(self):
        rng = np.random.RandomState(8)
        df = pd.DataFrame(rng.normal(size=(15, 2)), index=[f'c{i}' for i in range(15)])
        self.D = compute_distance_matrix(df)
        self.complete = hierarchical_clustering(self.D, 'complete')
        self.single = hierarchical_clustering(self.D, 'single')

    def test_entanglement_bounds(self):
        order = ['a', 'b', 'c', 'd', 'e']
        self.assertEqual(entanglement(order, order), 0.0)
        self.assertAlmostEqual(entanglement(order, order[::-1]), 1.0)
        self.assertGreater(entanglement(order, ['b', 'a', 'c', 'd', 'e']), 0.0)
        with self.assertRaises(ValueError):
            entanglement(order, ['a', 'b'])

    def test_rotate_keeps_tree(self):
        root_id = 2 * self.complete.n_leaves - 2
        rotated = self.complete.rotate([root_id])
        np.testing.assert_allclose(rotated.heights, self.complete.heights)
        self.assertNotEqual(rotated.leaf_order, self.complete.leaf_order)
        self.assertEqual(sorted(rotated.leaf_order), sorted(self.complete.leaf_order))
        with self.assertRaises(ValueError):
            self.complete.rotate([0])

    def test_untangle_never_increases(self):
        before = entanglement(self.complete.leaf_order, self.single.leaf_order)
        left, right = untangle(self.complete, self.single)
        after = entanglement(left.leaf_order, right.leaf_order)
        self.assertLessEqual(after, before + 1e-12)
        np.testing.assert_allclose(right.heights, self.single.heights)
        self.assertIsInstance(right, MergeTree)

    def test_untangle_identical_trees(self):
        flipped = self.complete.rotate([2 * self.complete.n_leaves - 2])
        _, right = untangle(self.complete, flipped)
        self.assertEqual(entanglement(self.complete.leaf_order, right.leaf_order), 0.0)

    def test_compare_two_leaf_trees(self):
        D = compute_distance_matrix(pd.DataFrame({'x': [0.0, 3.0]}, index=['p', 'q']))
        trees = {m: hierarchical_clustering(D, m) for m in ('complete', 'single')}
        with warnings.catch_warnings():
            warnings.simplefilter('error')
            table = compare_trees(trees, D)
        row = table.iloc[0]
        self.assertTrue(np.isnan(row['cophenetic_correlation']))
        self.assertTrue(np.isnan(row['cophenetic_a']))
        self.assertEqual(row['entanglement'], 0.0)

    def test_compare_trees_table(self):
        table = compare_trees({'complete': self.complete, 'single': self.single}, self.D)
        self.assertEqual(len(table), 1)
        row = table.iloc[0]
        self.assertEqual((row['tree_a'], row['tree_b']), ('complete', 'single'))
        self.assertTrue(0.0 <= row['entanglement'] <= 1.0)
        self.assertTrue(-1.0 <= row['cophenetic_correlation'] <= 1.0)
        self.assertIn('cophenetic_a', table.columns)


if __name__ == '__main__':
    unittest.main()
