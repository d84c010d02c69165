import gradio as gr

from json_field_mapper.handlers import (
    handle_config_upload,
    handle_inspect_root_change,
    handle_inspect_upload,
    handle_sources_upload,
    run_mapping_handler,
)
from json_field_mapper.logging_config import configure_logging
from json_field_mapper.settings import EngineSettings

# --- UI Definition ---
with gr.Blocks(title="JSON Field Mapper") as demo:
    gr.Markdown("# JSON Field Mapper")
    gr.Markdown("Map one or many JSON sources to a target shape with a declarative mapping config.")

    # State
    config_state = gr.State()
    sources_state = gr.State()
    inspect_data_state = gr.State()

    with gr.Tab("Run Mapping"):
        with gr.Row():
            with gr.Column(scale=1):
                gr.Markdown("### 1. Mapping config")
                config_file = gr.File(label="Upload Mapping Config", file_types=[".json"])
                config_status = gr.Textbox(label="Config Status", interactive=False)
                validation_report = gr.JSON(label="Validation Report")

            with gr.Column(scale=1):
                gr.Markdown("### 2. Source payloads")
                gr.Markdown("A JSON object keyed by source id, e.g. `{\"news\": {...}, \"blog\": [...]}`.")
                sources_file = gr.File(label="Upload Sources", file_types=[".json"])
                sources_status = gr.Textbox(label="Sources Status", interactive=False)

        gr.Markdown("### 3. Run & export")
        output_filename = gr.Textbox(label="Output Filename (optional)", placeholder="mapped_output.json")
        run_btn = gr.Button("Run Mapping", variant="primary")
        run_status = gr.Textbox(label="Status", interactive=False)
        download_output = gr.File(label="Download Result")
        result_preview = gr.JSON(label="Preview (lists trimmed to 3 entries)")

        config_file.upload(
            fn=handle_config_upload,
            inputs=[config_file],
            outputs=[config_state, config_status, validation_report],
        )

        sources_file.upload(
            fn=handle_sources_upload,
            inputs=[sources_file],
            outputs=[sources_state, sources_status],
        )

        run_btn.click(
            fn=run_mapping_handler,
            inputs=[config_state, sources_state, output_filename],
            outputs=[download_output, run_status, result_preview],
        )

    with gr.Tab("Inspect Source"):
        gr.Markdown("Find the `primaryPath` and `sourcePath` values for a payload.")
        with gr.Row():
            with gr.Column(scale=1):
                inspect_file = gr.File(label="Upload Source Payload", file_types=[".json"])
                inspect_status = gr.Textbox(label="Status", interactive=False)
                root_path_selector = gr.Dropdown(
                    label="Primary Path",
                    choices=["(root)"],
                    value="(root)",
                    allow_custom_value=True,
                    interactive=True,
                )
                item_count = gr.Textbox(label="Item Count", interactive=False)
                list_paths_table = gr.Dataframe(
                    headers=["Array Path", "Items"],
                    datatype=["str", "number"],
                    col_count=(2, "fixed"),
                    interactive=False,
                    label="Array Paths",
                )
            with gr.Column(scale=1):
                field_paths_table = gr.Dataframe(
                    headers=["Source Path"],
                    datatype=["str"],
                    col_count=(1, "fixed"),
                    interactive=False,
                    label="Item Fields",
                )
                field_tree = gr.JSON(label="Field Tree")

        inspect_file.upload(
            fn=handle_inspect_upload,
            inputs=[inspect_file],
            outputs=[
                inspect_data_state,
                root_path_selector,
                inspect_status,
                list_paths_table,
                field_paths_table,
                field_tree,
                item_count,
            ],
        )

        root_path_selector.change(
            fn=handle_inspect_root_change,
            inputs=[inspect_data_state, root_path_selector],
            outputs=[field_paths_table, field_tree, item_count],
        )

if __name__ == "__main__":
    configure_logging(level=EngineSettings.from_env().log_level)
    demo.launch()
