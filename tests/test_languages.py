import pytest

from coderunner.config import Settings
from coderunner.errors import UnsupportedLanguage
from coderunner.languages import get_profile, image_for, java_class_name


class TestJavaClassName:
    def test_detects_public_class(self):
        code = "import java.util.*;\n\npublic class Solution {\n  public static void main(String[] a) {}\n}"
        assert java_class_name(code) == "Solution"

    def test_defaults_to_main(self):
        assert java_class_name("class Helper {}") == "Main"

    def test_file_name_uses_class(self):
        assert get_profile("java").file_name("public  class Foo {}") == "Foo.java"


class TestGetProfile:
    @pytest.mark.parametrize(
        "language,expected",
        [("python", "python"), ("Python", "python"), ("c++", "cpp"), ("JS", "javascript")],
    )
    def test_lookup(self, language, expected):
        assert get_profile(language).name == expected

    def test_unsupported_language(self):
        with pytest.raises(UnsupportedLanguage) as exc:
            get_profile("ruby")
        assert exc.value.detail == "Unsupported language: ruby"

    def test_missing_language(self):
        with pytest.raises(UnsupportedLanguage):
            get_profile(None)

    def test_image_from_settings(self):
        settings = Settings(PYTHON_IMAGE="my/python:1")
        assert image_for(get_profile("python"), settings) == "my/python:1"
        assert image_for(get_profile("cpp"), settings) == "gcc:13"


class TestBuildCommand:
    def test_python_unbuffered(self):
        cmd = get_profile("python").build_command("/tmp/run", "main.py")
        assert cmd == "python3 -u /tmp/run/main.py"

    def test_javascript(self):
        assert get_profile("javascript").build_command("/tmp/run", "main.js") == "node /tmp/run/main.js"

    def test_cpp_compile_then_run(self):
        cmd = get_profile("cpp").build_command("/tmp/run", "main.cpp")
        assert cmd == (
            "cd /tmp/run && g++ -std=c++20 -o /tmp/run/main main.cpp && /tmp/run/main"
        )

    def test_java_compile_then_run(self):
        cmd = get_profile("java").build_command("/app/run-1", "Solution.java")
        assert cmd == "cd /app/run-1 && javac Solution.java && java -cp /app/run-1 Solution"

    def test_java_main_file_in_subdirectory(self):
        cmd = get_profile("java").build_command("/app/run-1", "src/App.java")
        assert cmd.endswith("java -cp /app/run-1/src App")

    def test_compiled_languages_need_exec_tmp(self):
        assert get_profile("cpp").needs_exec_tmp
        assert get_profile("java").needs_exec_tmp
        assert not get_profile("python").needs_exec_tmp
