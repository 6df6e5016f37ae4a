"""业务服务：实体存储访问、运行期设置、数据汇总与测试配置辅助。"""
