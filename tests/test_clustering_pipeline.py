import os
import unittest
import zipfile

import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from cluster_lab.data_processing import clustering_params as params
from cluster_lab.data_processing.clustering_pipeline import HierarchicalPipeline, KMeansPipeline
from tests.conftest import cleanup_dir, make_emissions_like, make_penguin_like, make_temp_export_dir


class TestKMeansPipeline(unittest.TestCase):
    def tearDown(self):
        plt.close('all')

    def test_complete_analysis(self):
        pipeline = KMeansPipeline(data=make_penguin_like(), n_restarts=5, max_clusters=5, random_state=0)
        results = pipeline.run_complete_analysis(show_visualizations=False, export_results=False)

        self.assertEqual(results['n_clusters'], params.N_CLUSTERS)
        self.assertEqual(results['complete_cases'], 88)
        self.assertIn(results['recommended_k'], [None, 2, 3, 4, 5])
        self.assertGreater(results['analysis_results']['agreement']['adjusted_rand_index'], 0.8)

        labelled = pipeline.labelled
        self.assertTrue(labelled.loc[[3, 40], 'cluster'].isna().all())
        self.assertTrue(labelled['cluster'].dropna().between(1, 3).all())

        summary = results['analysis_results']['cluster_summary']
        self.assertListEqual(list(summary.index), [1, 2, 3])
        self.assertEqual(summary['size'].sum(), 88)
        # Centroids are reported in original units
        self.assertTrue(summary['body_mass_g'].between(3000, 6000).all())

        for name in ('raw_features', 'index_panels', 'cluster_votes', 'clusters', 'contingency', 'cluster_sizes'):
            self.assertIn(name, pipeline.figures)

    def test_cluster_count_override(self):
        pipeline = KMeansPipeline(data=make_penguin_like(), n_restarts=3, random_state=0)
        results = pipeline.run_complete_analysis(
            n_clusters_override=2, estimate_clusters=False, show_visualizations=False
        )
        self.assertEqual(results['n_clusters'], 2)
        self.assertIsNone(results['recommended_k'])
        self.assertNotIn('index_panels', pipeline.figures)

    def test_steps_out_of_order(self):
        pipeline = KMeansPipeline(data=make_penguin_like())
        with self.assertRaises(ValueError):
            pipeline.prepare_features()
        pipeline.load_data()
        with self.assertRaises(ValueError):
            pipeline.run_kmeans()
        with self.assertRaises(ValueError):
            pipeline.summarize()

    def test_missing_feature_column(self):
        data = make_penguin_like().drop(columns=['body_mass_g'])
        with self.assertRaises(ValueError):
            KMeansPipeline(data=data).load_data()

    def test_export_results(self):
        tmp = make_temp_export_dir()
        try:
            pipeline = KMeansPipeline(data=make_penguin_like(), n_restarts=3, max_clusters=4, random_state=0)
            pipeline.run_complete_analysis(show_visualizations=False)
            files = pipeline.export_results(output_dir=tmp)
            self.assertTrue(os.path.isfile(files['workbook']))
            self.assertEqual(len(files['figures']), len(pipeline.figures))
        finally:
            cleanup_dir(tmp)


class TestHierarchicalPipeline(unittest.TestCase):
    def tearDown(self):
        plt.close('all')

    def test_complete_analysis(self):
        pipeline = HierarchicalPipeline(data=make_emissions_like(25), top_n=10)
        results = pipeline.run_complete_analysis(show_visualizations=False, export_results=False)

        top = make_emissions_like(25).nlargest(10, 'ghg_emissions')['country'].tolist()
        self.assertListEqual(results['observations'], top)
        self.assertEqual(set(results['trees']), {'complete', 'single'})
        for tree in results['trees'].values():
            self.assertEqual(tree.n_leaves, 10)
            self.assertEqual(len(tree.merges), 9)
        self.assertEqual(len(results['comparison']), 1)
        self.assertEqual(results['cuts'].shape, (10, 2))
        self.assertListEqual(
            sorted(pipeline.figures), ['dendrogram_complete', 'dendrogram_single', 'tanglegram']
        )
        self.assertListEqual(pipeline.feature_columns,
                             ['ghg_emissions', 'co2_per_capita', 'energy_use', 'population_m'])

    def test_from_file_and_export(self):
        tmp = make_temp_export_dir()
        try:
            path = os.path.join(tmp, 'emissions.csv')
            data = make_emissions_like(15)
            data.loc[0, 'energy_use'] = None
            data.to_csv(path, index=False)
            pipeline = HierarchicalPipeline(data_path=path, top_n=8, methods=('complete', 'single', 'average'))
            pipeline.run_complete_analysis(show_visualizations=False)
            self.assertEqual(len(pipeline.top), 8)
            self.assertNotIn('Country 00', pipeline.top.index)
            self.assertEqual(len(pipeline.comparison), 3)
            files = pipeline.export_results(output_dir=os.path.join(tmp, 'out'))
            self.assertTrue(os.path.isfile(files['workbook']))
        finally:
            cleanup_dir(tmp)

    def test_requires_data(self):
        with self.assertRaises(ValueError):
            HierarchicalPipeline().load_data()
        with self.assertRaises(ValueError):
            HierarchicalPipeline(methods=())
        with self.assertRaises(ValueError):
            HierarchicalPipeline(methods=('complete', 'Complete'))

    def test_single_method_export(self):
        tmp = make_temp_export_dir()
        try:
            pipeline = HierarchicalPipeline(data=make_emissions_like(), top_n=8, methods=('complete',))
            pipeline.run_complete_analysis(show_visualizations=False, export_results=False)
            self.assertTrue(pipeline.comparison.empty)
            self.assertListEqual(sorted(pipeline.figures), ['dendrogram_complete'])
            files = pipeline.export_results(output_dir=tmp)
            with zipfile.ZipFile(files['workbook']) as xlsx:
                workbook = xlsx.read('xl/workbook.xml').decode('utf-8')
            self.assertIn('name="cuts"', workbook)
            self.assertNotIn('name="comparison"', workbook)
        finally:
            cleanup_dir(tmp)

    def test_steps_out_of_order(self):
        pipeline = HierarchicalPipeline(data=make_emissions_like())
        with self.assertRaises(ValueError):
            pipeline.select_top_emitters()
        pipeline.load_data()
        with self.assertRaises(ValueError):
            pipeline.compute_distances()
        with self.assertRaises(ValueError):
            pipeline.compare_trees()


if __name__ == '__main__':
    unittest.main()
