from kedro.pipeline import Pipeline, node, pipeline

from .nodes import load_heart_dataset, recode_labels


def create_pipeline(**kwargs) -> Pipeline:
    return pipeline(
        [
            node(
                func=load_heart_dataset,
                inputs=[
                    "params:data_processing.raw_filepath",
                    "params:data_processing.required_columns",
                ],
                outputs="raw_ingestion.ds_heart_disease",
                name="load_heart_dataset_node",
            ),
            node(
                func=recode_labels,
                inputs=["raw_ingestion.ds_heart_disease", "params:target_col"],
                outputs="processed.ds_heart_disease",
                name="recode_labels_node",
            ),
        ]
    )
