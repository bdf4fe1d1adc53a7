import pandas as pd
import pytest
from utils.file_io import save_dataframe, read_dataframe

def test_parquet_roundtrip_stringifies_labels(tmp_path):
    df = pd.DataFrame({0: [1, 2], 'b': [3.0, 4.0]})
    path = save_dataframe(df, tmp_path / "nested" / "out.parquet")

    assert path.exists()
    loaded = read_dataframe(path)
    assert list(loaded.columns) == ['0', 'b']
    assert loaded['b'].tolist() == [3.0, 4.0]
    # The caller's frame keeps its labels
    assert list(df.columns) == [0, 'b']

def test_excel_copy(tmp_path):
    df = pd.DataFrame({'a': [1]})
    save_dataframe(df, tmp_path / "t.parquet", excel_copy=True)
    assert (tmp_path / "t.xlsx").exists()
    assert read_dataframe(tmp_path / "t.xlsx")['a'].tolist() == [1]

def test_read_csv(tmp_path):
    (tmp_path / "d.csv").write_text("x,y\n1,2\n")
    assert read_dataframe(tmp_path / "d.csv").shape == (1, 2)

def test_unsupported_extension(tmp_path):
    with pytest.raises(ValueError, match="Unsupported"):
        read_dataframe(tmp_path / "d.json")
